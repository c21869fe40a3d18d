import logging
from pathlib import Path

from parlang import abstract_syntax as ast, parser

logger = logging.getLogger(__name__)

# Directories searched for relative `load` paths after the working directory.
SEARCH_PATH: list[Path] = []


def resolve(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute() or candidate.exists():
        return candidate
    for directory in SEARCH_PATH:
        if (directory / candidate).exists():
            return directory / candidate
    return candidate


def load_program(path: str) -> ast.Expression:
    """Read and parse the file at `path`; files are re-read on every call."""
    resolved = resolve(path)
    with open(resolved) as fd:
        src = fd.read()
    logger.debug("loaded %s (%d bytes)", resolved, len(src))
    return parser.parse_program(src)
