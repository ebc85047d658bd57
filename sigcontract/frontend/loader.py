"""
Frontend: read and write call traces as JSON lines.

One signature record per line, in the shape produced by
`Signature.to_dict()`:

    {"method": {"module": "m", "qualname": "f"},
     "args": [{"name": "x", "kind": "positional", "type": "int"}],
     "return": "str"}
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..errors import InvalidSignatureError
from ..signature import Signature

logger = logging.getLogger(__name__)


def parse_line(line: str) -> Optional[Signature]:
    """
    Parse one trace line.

    Returns:
        The signature, or None for blank lines

    Raises:
        InvalidSignatureError: the line is not a valid signature record
    """
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError as e:
        raise InvalidSignatureError(f"not JSON: {e}") from e
    return Signature.from_dict(raw)


def load_signatures(path: Path) -> Iterator[Signature]:
    """
    Stream signatures from a JSON-lines trace file.

    Malformed lines are logged and skipped; the rest of the file is still read.
    """
    with open(path, "rb") as f:
        for lineno, raw_line in enumerate(f, start=1):
            try:
                signature = parse_line(raw_line.decode("utf-8"))
            except (InvalidSignatureError, UnicodeDecodeError) as e:
                logger.error("%s:%d: skipping malformed record: %s", path, lineno, e)
                continue
            if signature is not None:
                yield signature


def dump_signatures(signatures: Iterable[Signature], path: Path) -> int:
    """Write signatures as JSON lines. Returns the number written."""
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for signature in signatures:
            f.write(json.dumps(signature.to_dict(), sort_keys=True))
            f.write("\n")
            count += 1
    return count
