"""Label map parsing for ``.pbtxt`` class definition files."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .exceptions import MalformedLabelMapError

logger = logging.getLogger(__name__)

# item { id: 1 name: 'cup' }
LABEL_ITEM_PATTERN = re.compile(
    r"\bitem\s*\{\s*id:\s*(\d+)\s*name:\s*'(\w+)'\s*\}",
    re.MULTILINE,
)


class LabelMap:
    """
    Ordered mapping from integer class id to class name.

    Instances are never updated in place: loading a new file produces a
    new LabelMap which replaces the old one as a whole.
    """

    def __init__(self, entries: Optional[Dict[int, str]] = None) -> None:
        self._entries: Dict[int, str] = dict(entries or {})
        self._name_to_id: Dict[str, int] = {}
        for class_id, name in self._entries.items():
            self._name_to_id.setdefault(name, class_id)

    @classmethod
    def load(cls, text: str) -> LabelMap:
        """
        Parse label map text.

        Entries are scanned left to right; fragments between entries that
        do not match are ignored. A repeated id keeps its first position
        and takes the last name seen.

        Args:
            text: Contents of a label map file

        Returns:
            New LabelMap instance

        Raises:
            MalformedLabelMapError: If no entry could be parsed
        """
        entries: Dict[int, str] = {}
        for match in LABEL_ITEM_PATTERN.finditer(text):
            class_id = int(match.group(1))
            if class_id <= 0:
                logger.warning(f"Ignoring label map entry with non-positive id {class_id}")
                continue
            entries[class_id] = match.group(2)

        if not entries:
            raise MalformedLabelMapError("No label map entries found")

        logger.info(f"Loaded label map with {len(entries)} classes")
        return cls(entries)

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> LabelMap:
        """Read and parse a label map file."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise MalformedLabelMapError(
                f"Cannot read label map: {e}", {"path": str(path)}
            ) from e
        return cls.load(text)

    def lookup(self, class_id: int) -> Optional[str]:
        """Return the class name for an id, or None if unknown."""
        return self._entries.get(class_id)

    def id_for(self, name: str) -> Optional[int]:
        """Return the first class id carrying ``name``, or None."""
        return self._name_to_id.get(name)

    def items(self) -> List[Tuple[int, str]]:
        """Entries in first-seen order."""
        return list(self._entries.items())

    def to_text(self) -> str:
        """Serialize back to label map text."""
        return "".join(
            f"item {{\n  id: {class_id}\n  name: '{name}'\n}}\n"
            for class_id, name in self._entries.items()
        )

    def __contains__(self, class_id: object) -> bool:
        return class_id in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LabelMap):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"LabelMap({self._entries!r})"
