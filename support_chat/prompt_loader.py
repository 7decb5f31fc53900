from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

from .config import Settings

SYSTEM_PROMPT_FILE = "system_prompt.txt"
WELCOME_MESSAGE_FILE = "welcome_message.txt"


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded, trimmed string.
    Side Effects / State: None; reads the filesystem.
    Dependencies: Uses Path.read_text/read_bytes; used to build the session seed.
    Failure Modes: UnicodeDecodeError triggers a tolerant decode that drops bad bytes;
        a missing file raises FileNotFoundError.
    If Removed: Sessions start without a system prompt.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        text = prompt_path.read_bytes().decode("utf-8", errors="ignore")
    return text.lstrip("\ufeff").strip()


def build_seed_messages(settings: Settings) -> List[Tuple[str, str]]:
    """Purpose: Build the (role, content) messages every session starts with.
    Inputs/Outputs: Input is Settings; output is the system prompt plus optional welcome.
    Side Effects / State: Reads prompt files from settings.prompts_dir.
    Dependencies: load_prompt; brand placeholder filled with the first brand name.
    Failure Modes: Missing system prompt file raises FileNotFoundError at startup.
    If Removed: The model is not told who it speaks for.
    Testing Notes: Seed contains the brand name and no placeholder.
    """
    # The welcome message is optional; the system prompt is not.
    brand = settings.brand_names[0] if settings.brand_names else "our store"
    system_prompt = load_prompt(settings.prompts_dir / SYSTEM_PROMPT_FILE).replace("<<BRAND>>", brand)
    seed = [("system", system_prompt)]
    welcome_path = settings.prompts_dir / WELCOME_MESSAGE_FILE
    if welcome_path.exists():
        welcome = load_prompt(welcome_path).replace("<<BRAND>>", brand)
        if welcome:
            seed.append(("assistant", welcome))
    return seed
