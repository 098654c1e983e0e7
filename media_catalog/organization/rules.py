import calendar
import re
import string
from pathlib import Path
from typing import Callable, Dict, Set

from .. import config
from ..catalog.catalog import normalize_path
from ..exceptions import TemplateError
from ..models import MediaRecord

PLACEHOLDERS = {"year", "month", "day", "timestamp_ns", "hash", "ext", "device"}
DATE_PLACEHOLDERS = {"year", "month", "day", "timestamp_ns"}

UNSAFE_CHARS = re.compile(r'[^\w.\- ]+')


class PathTemplate:
    """
    A naming convention such as "{year}/{year}-{month}/{hash}.{ext}".
    Relative renders land under the library root.
    """

    def __init__(self, template: str):
        if not template or not template.strip():
            raise TemplateError("Template must not be empty")
        self.template = template
        self.fields = self._parse_fields(template)

    def __repr__(self):
        return f"PathTemplate({self.template!r})"

    def _parse_fields(self, template: str) -> Set[str]:
        fields = set()
        try:
            parsed = list(string.Formatter().parse(template))
        except ValueError as e:
            raise TemplateError(f"Malformed template {template!r}: {e}") from e
        for _literal, field_name, _spec, _conversion in parsed:
            if field_name is None:
                continue
            if field_name not in PLACEHOLDERS:
                raise TemplateError(
                    f"Unknown placeholder {{{field_name}}} in {template!r}; "
                    f"expected one of {', '.join(sorted(PLACEHOLDERS))}"
                )
            fields.add(field_name)
        return fields

    @property
    def needs_date(self) -> bool:
        return bool(self.fields & DATE_PLACEHOLDERS)

    def values_for(self, record: MediaRecord) -> Dict[str, str]:
        values = {
            "hash": record.hash,
            "ext": record.filepath.suffix.lower().lstrip("."),
            "device": sanitize_component(record.device) if record.device else config.UNKNOWN_DEVICE,
        }
        if record.created is not None:
            dt = record.created
            values.update(
                year=f"{dt.year:04d}",
                month=f"{dt.month:02d}",
                day=f"{dt.day:02d}",
                # Naive capture times are read as UTC so the value is the same on every machine
                timestamp_ns=str(calendar.timegm(dt.utctimetuple()) * 1_000_000_000 + dt.microsecond * 1000),
            )
        elif self.needs_date:
            raise TemplateError(f"No capture time for {record.filepath}")
        return values

    def render(self, record: MediaRecord, root: Path) -> Path:
        rendered = self.template.format_map(self.values_for(record))
        path = Path(rendered)
        if not path.name.strip("."):
            raise TemplateError(f"Template {self.template!r} renders no file name for {record.filepath}")
        if path.name.endswith("."):
            # "{hash}.{ext}" for a file without extension
            path = path.with_name(path.name.rstrip("."))
        if not path.is_absolute():
            path = Path(root) / path
        return normalize_path(path)


def sanitize_component(value: str) -> str:
    """Make a free-text value safe to use as a single path component."""
    cleaned = UNSAFE_CHARS.sub("_", value).strip(" .")
    return cleaned or config.UNKNOWN_DEVICE


def resolve_collision(target: Path, is_taken: Callable[[Path], bool], own_path: Path) -> Path:
    """
    Lowest free "<stem>_<n><suffix>" for target. The record's own current
    path never counts as taken, which keeps repeated runs stable.
    """
    if target == own_path or not is_taken(target):
        return target
    stem = target.stem
    ext = target.suffix
    counter = 1
    while True:
        candidate = target.with_name(f"{stem}_{counter}{ext}")
        if candidate == own_path or not is_taken(candidate):
            return candidate
        counter += 1
