from .models import ClassificationResult, Entry, EntryKind, EqualityMode, TreeListing


def entries_equal(a: Entry, b: Entry, mode: EqualityMode) -> bool:
    """
    Decide whether two entries found at the same relative path are the same.

    Kinds must always match. Directories are equal by presence alone and
    symlinks by their target text. Files compare by size under METADATA
    and by content checksum under CHECKSUM; mtime is never compared.
    """
    if a.kind is not b.kind:
        return False

    if a.kind is EntryKind.DIRECTORY:
        return True

    if a.kind is EntryKind.SYMLINK:
        return a.link_target == b.link_target

    if mode is EqualityMode.CHECKSUM:
        if a.checksum is None or b.checksum is None:
            raise ValueError(f"{a.relative_path} has no checksum; walk both trees with checksum=True")
        return a.checksum == b.checksum

    return a.size == b.size


def classify(
    a: TreeListing, b: TreeListing, mode: EqualityMode = EqualityMode.METADATA
) -> ClassificationResult:
    keys_a: frozenset[str] = frozenset(a)
    keys_b: frozenset[str] = frozenset(b)

    differ: set[str] = set()
    same: set[str] = set()

    for relative_path in keys_a & keys_b:
        if entries_equal(a[relative_path], b[relative_path], mode):
            same.add(relative_path)
        else:
            differ.add(relative_path)

    return ClassificationResult(
        only_a=keys_a - keys_b,
        only_b=keys_b - keys_a,
        differ=frozenset(differ),
        same=frozenset(same),
        listing_a=a,
        listing_b=b,
        mode=mode,
    )
