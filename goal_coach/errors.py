from typing import Dict, Literal

CoachErrorKind = Literal["BAD_REQUEST", "NOT_FOUND", "CONFLICT", "VALIDATION"]

STATUS_BY_KIND: Dict[str, int] = {
    "BAD_REQUEST": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "VALIDATION": 422,
}


class CoachActionError(Exception):
    def __init__(self, kind: CoachErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND.get(self.kind, 500)

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.message, "kind": self.kind}

    def __repr__(self) -> str:
        return f"CoachActionError({self.kind!r}, {self.message!r})"


def bad_request(message: str) -> CoachActionError:
    return CoachActionError("BAD_REQUEST", message)


def not_found(message: str) -> CoachActionError:
    return CoachActionError("NOT_FOUND", message)


def conflict(message: str) -> CoachActionError:
    return CoachActionError("CONFLICT", message)
