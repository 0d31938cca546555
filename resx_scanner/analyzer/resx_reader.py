"""Reader for .resx resource files."""
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional


class ResxFormatError(ValueError):
    """Raised when a file is not a well-formed .resx document."""


@dataclass(frozen=True)
class ResxEntry:
    """One <data> element of a .resx file."""
    key: str
    value: str
    comment: Optional[str] = None


def read_resx(path: str | Path) -> List[ResxEntry]:
    """Read every <data> entry of a .resx file in document order.

    Args:
        path: Path to the .resx file

    Returns:
        List of ResxEntry; a missing <value> reads as the empty string

    Raises:
        OSError: If the file cannot be read
        ResxFormatError: If the XML is malformed, the root element is not
            <root>, or a <data> element has no name
    """
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ResxFormatError(f"{path}: {e}") from e

    if root.tag != 'root':
        raise ResxFormatError(f"{path}: expected <root>, found <{root.tag}>")

    entries = []
    for data in root.iter('data'):
        key = data.get('name')
        if not key:
            raise ResxFormatError(f"{path}: <data> element without a name attribute")
        value = data.findtext('value') or ''
        comment = data.findtext('comment')
        entries.append(ResxEntry(key, value, comment))
    return entries
