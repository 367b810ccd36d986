"""Image diff engine: reconcile stored image rows with a desired image list"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union
from urllib.parse import unquote

from invoicer.services.errors import ValidationError


@dataclass(frozen=True)
class NewImage:
    """Raw image payload supplied by the caller"""

    data: bytes
    content_type: str


@dataclass(frozen=True)
class ImageReference:
    """Reference to an image the project already has (blob key or its URL)"""

    reference: str


DesiredImage = Union[NewImage, ImageReference]


@dataclass(frozen=True)
class PlannedUpload:
    position: int
    image: NewImage


@dataclass(frozen=True)
class KeptImage:
    row_id: int
    blob_key: str
    old_position: int
    new_position: int

    @property
    def moved(self) -> bool:
        return self.old_position != self.new_position


@dataclass(frozen=True)
class RemovedImage:
    row_id: int
    blob_key: str


@dataclass
class ImageDiff:
    """Add / keep / remove sets for one update"""

    added: List[PlannedUpload] = field(default_factory=list)
    kept: List[KeptImage] = field(default_factory=list)
    removed: List[RemovedImage] = field(default_factory=list)

    @property
    def moved(self) -> List[KeptImage]:
        return [k for k in self.kept if k.moved]

    @property
    def is_noop(self) -> bool:
        return not self.added and not self.removed and not self.moved


def resolve_reference(reference: str, known_keys: Sequence[str]) -> Optional[str]:
    """
    Map a caller reference to one of the known blob keys.

    Accepts the bare key or any URL whose path ends with it. The reference is
    matched as given first, since stored keys may themselves contain `%`;
    the percent-decoded form is only tried when that finds nothing.
    """
    ref = reference.strip()
    for candidate in (ref, unquote(ref)):
        if candidate in known_keys:
            return candidate
        for key in known_keys:
            if candidate.endswith("/" + key):
                return key
    return None


def diff_images(current_rows, desired: Sequence[DesiredImage]) -> ImageDiff:
    """
    Partition the desired list against the current rows.

    Args:
        current_rows: Persisted image rows (id, blob_key, display_order)
        desired: Full desired image list in display order

    Returns:
        ImageDiff with positions taken from the desired list

    Raises:
        ValidationError: If a reference matches no current image, or the same
            image is referenced twice
    """
    rows_by_key = {row.blob_key: row for row in current_rows}
    known_keys = list(rows_by_key)

    diff = ImageDiff()
    seen = set()

    for position, item in enumerate(desired):
        if isinstance(item, NewImage):
            diff.added.append(PlannedUpload(position=position, image=item))
            continue

        key = resolve_reference(item.reference, known_keys)
        if key is None:
            raise ValidationError(f"Image reference does not belong to this project: {item.reference}")
        if key in seen:
            raise ValidationError(f"Image referenced more than once: {item.reference}")
        seen.add(key)

        row = rows_by_key[key]
        diff.kept.append(
            KeptImage(
                row_id=row.id,
                blob_key=key,
                old_position=row.display_order,
                new_position=position,
            )
        )

    for row in current_rows:
        if row.blob_key not in seen:
            diff.removed.append(RemovedImage(row_id=row.id, blob_key=row.blob_key))

    return diff
