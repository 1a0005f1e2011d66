from __future__ import annotations

import importlib
from types import ModuleType
from typing import Optional


# Extras that provide each optional module (see pyproject.toml).
_EXTRAS = {
    "sounddevice": "live",
    "librosa": "pyin",
}


def optional_import(name: str) -> Optional[ModuleType]:
    """Try import a module, return None if not available."""
    try:
        return importlib.import_module(name)
    except Exception:
        # sounddevice raises OSError when the PortAudio library is missing
        return None


def require_module(name: str) -> ModuleType:
    """Import a module, raise a friendly error if missing."""
    mod = optional_import(name)
    if mod is None:
        extra = _EXTRAS.get(name)
        hint = f"  python -m pip install 'sight-singing[{extra}]'\n" if extra else ""
        raise ImportError(
            f"missing dependency: {name}\n"
            "install it with:\n"
            f"  python -m pip install {name}\n"
            f"{hint}"
        )
    return mod
