from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

PROMPTS_PATH = Path(__file__).with_name("coach_prompts.yaml")


@lru_cache(maxsize=4)
def load_prompts(path: Optional[Path] = None) -> Dict[str, Any]:
    content = (path or PROMPTS_PATH).read_text(encoding="utf-8")
    parsed = yaml.safe_load(content)
    if not isinstance(parsed, dict):
        raise RuntimeError("Coach prompts file did not produce an object")
    for section in ("rewrite", "chat"):
        if not isinstance(parsed.get(section), dict):
            raise RuntimeError(f"Coach prompts file is missing the '{section}' section")
    return parsed
