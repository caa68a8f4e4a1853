from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import ConfigurationError
from .pipeline import DEFAULT_BATCH_SIZE, DEFAULT_QUEUE_DEPTH
from .reference import is_reference_path

_USAGE_HINT = (
    "Please specify input alignment BAM file, optional reference FASTA file, and output "
    "harmony TXT file. Please see --help for more information."
)


@dataclass(frozen=True)
class ProfileSettings:
    alignments: str
    output: str
    reference: Optional[str] = None
    region: str = ""
    extended: bool = False
    threads: int = 1
    queue_depth: int = DEFAULT_QUEUE_DEPTH
    batch_size: int = DEFAULT_BATCH_SIZE
    qv_output: Optional[str] = None

    @classmethod
    def from_positionals(cls, files: Sequence[str], **options) -> "ProfileSettings":
        """Build settings from ``IN.bam [IN.ref.fasta] OUT.txt`` positionals."""
        files = list(files)
        if len(files) == 2:
            if is_reference_path(files[1]):
                raise ConfigurationError("Missing output file. " + _USAGE_HINT)
            settings = cls(alignments=files[0], output=files[1], **options)
        elif len(files) == 3:
            if not is_reference_path(files[1]):
                raise ConfigurationError(
                    f"Reference must be a FASTA file (.fa/.fasta[.gz]), got {files[1]}. " + _USAGE_HINT
                )
            settings = cls(alignments=files[0], reference=files[1], output=files[2], **options)
        else:
            raise ConfigurationError(_USAGE_HINT)
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.threads < 1:
            raise ConfigurationError("--num-threads must be >= 1")
        if self.queue_depth < 1:
            raise ConfigurationError("--queue-depth must be >= 1")
        if self.batch_size < 1:
            raise ConfigurationError("--batch-size must be >= 1")
