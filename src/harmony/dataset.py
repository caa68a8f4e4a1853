"""Resolve an alignment input into its BAM files, index kinds and dataset filter.

Three input flavours are accepted:

- a single ``.bam`` file;
- a file-of-file-names (``.fofn``), one BAM path per line;
- a PacBio dataset XML listing BAMs as ``ExternalResource`` elements,
  optionally carrying ``Filters``.

Relative paths in fofn and XML inputs are resolved against the input's directory.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import ConfigurationError
from .filters import RecordFilter, dataset_property_filter, intersection, union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BamResource:
    path: Path
    has_pbi: bool
    has_bai: bool


@dataclass(frozen=True)
class DataSet:
    path: Path
    resources: Tuple[BamResource, ...]
    filter: Optional[RecordFilter] = None

    @property
    def bam_paths(self) -> List[str]:
        return [str(r.path) for r in self.resources]


def has_pbi(bam_path: str | Path) -> bool:
    bam = Path(bam_path)
    return bam.with_suffix(bam.suffix + ".pbi").exists()


def has_bai(bam_path: str | Path) -> bool:
    """True if a BAI or CSI index sits next to the BAM."""
    bam = Path(bam_path)
    candidates = (
        bam.with_suffix(bam.suffix + ".bai"),
        bam.with_suffix(".bai"),
        bam.with_suffix(bam.suffix + ".csi"),
    )
    return any(c.exists() for c in candidates)


def _resource(path: Path) -> BamResource:
    return BamResource(path=path, has_pbi=has_pbi(path), has_bai=has_bai(path))


def _resolve(base: Path, entry: str) -> Path:
    if entry.startswith("file://"):
        entry = entry[len("file://") :]
    p = Path(entry).expanduser()
    if not p.is_absolute():
        p = base / p
    return p


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _read_fofn(path: Path) -> List[Path]:
    out: List[Path] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        out.append(_resolve(path.parent, entry))
    return out


def _children(el: ET.Element, name: str) -> List[ET.Element]:
    return [c for c in el if _local(c.tag) == name]


def _resource_ids(dataset_el: ET.Element) -> List[str]:
    """BAM resource ids of a dataset element and its sub-datasets.

    Only direct ``ExternalResources/ExternalResource`` children count; nested
    resources (scraps, companion files) belong to their parent entry.
    """
    ids: List[str] = []
    for group in _children(dataset_el, "ExternalResources"):
        for res in _children(group, "ExternalResource"):
            rid = res.get("ResourceId", "")
            if rid.lower().endswith(".bam"):
                ids.append(rid)
    for group in _children(dataset_el, "DataSets"):
        for sub in group:
            ids.extend(_resource_ids(sub))
    return ids


def _read_xml(path: Path) -> Tuple[List[Path], Optional[RecordFilter]]:
    try:
        root = ET.parse(str(path)).getroot()
    except ET.ParseError as e:
        raise ConfigurationError(f"Could not parse dataset XML {path}: {e}") from e

    bams: List[Path] = []
    for rid in _resource_ids(root):
        bam = _resolve(path.parent, rid)
        if bam not in bams:
            bams.append(bam)

    # Top-level Filter elements are OR'ed; properties inside one Filter are AND'ed.
    clauses: List[RecordFilter] = []
    for group in _children(root, "Filters"):
        for flt in _children(group, "Filter"):
            props = [
                dataset_property_filter(
                    prop.get("Name", ""), prop.get("Operator", "=="), prop.get("Value", "")
                )
                for props_el in _children(flt, "Properties")
                for prop in _children(props_el, "Property")
            ]
            clause = intersection(props)
            if clause is not None:
                clauses.append(clause)
    return bams, union(clauses)


def load_dataset(path: str | Path) -> DataSet:
    """Resolve ``path`` into a :class:`DataSet`.

    Raises FileNotFoundError if the input or any listed BAM is missing, and
    ConfigurationError if it lists no BAM at all.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Could not open input file {p}")

    suffix = p.suffix.lower()
    dataset_filter: Optional[RecordFilter] = None
    if suffix == ".fofn":
        bams = _read_fofn(p)
    elif suffix == ".xml":
        bams, dataset_filter = _read_xml(p)
    else:
        bams = [p]

    if not bams:
        raise ConfigurationError(f"No input BAM files in {p}")
    missing = [b for b in bams if not b.exists()]
    if missing:
        raise FileNotFoundError(f"Could not open input file {missing[0]}")

    resources = tuple(_resource(b) for b in bams)
    logger.info(
        "Input %s: %d BAM file(s), %d with .pbi, %d with .bai/.csi%s",
        p,
        len(resources),
        sum(r.has_pbi for r in resources),
        sum(r.has_bai for r in resources),
        ", dataset filter present" if dataset_filter is not None else "",
    )
    return DataSet(path=p, resources=resources, filter=dataset_filter)
