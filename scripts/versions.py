"""Game build identification by executable hash.

Each known build is declared once in `KNOWN_BUILDS` with the MD5 of its NSO in
both compressed and decompressed form (Ghidra hashes whichever file was
imported). Builds whose hashes are not collected yet are declared with
`ALWAYS_COMPATIBLE`; they match any Switch binary that no earlier entry claims,
and only while `allow_unhashed_builds` is enabled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from export_config import SUPPORTED_EXECUTABLE_FORMAT
from export_primitives import maybe_call

STATUS_MATCHED = "matched"
STATUS_UNSUPPORTED_FORMAT = "unsupported_format"
STATUS_UNRECOGNIZED = "unrecognized"

MATCHED_BY_COMPRESSED = "compressed"
MATCHED_BY_DECOMPRESSED = "decompressed"
MATCHED_BY_WILDCARD = "wildcard"


@dataclass(frozen=True)
class BinaryFingerprint:
    compressed: str
    decompressed: str

    def match(self, hashes: Iterable[str]) -> str | None:
        for value in hashes:
            if not value:
                continue
            value = value.lower()
            if value == self.compressed.lower():
                return MATCHED_BY_COMPRESSED
            if value == self.decompressed.lower():
                return MATCHED_BY_DECOMPRESSED
        return None


@dataclass(frozen=True)
class AlwaysCompatible:
    """Wildcard fingerprint for builds whose hashes are not known yet."""


ALWAYS_COMPATIBLE = AlwaysCompatible()


@dataclass(frozen=True)
class KnownBuild:
    version: str
    fingerprint: BinaryFingerprint | AlwaysCompatible

    @property
    def is_wildcard(self) -> bool:
        return isinstance(self.fingerprint, AlwaysCompatible)


KNOWN_BUILDS: tuple[KnownBuild, ...] = (
    KnownBuild(
        version="1.0.0",
        fingerprint=BinaryFingerprint(
            compressed="f5d9aa2af3abef3070791057060ee93c",
            decompressed="0bfaa4258b49b560bb5bdf4d353ec0f6",
        ),
    ),
    # TODO: replace with the 1.0.1 compressed/decompressed MD5s once collected.
    KnownBuild(version="1.0.1", fingerprint=ALWAYS_COMPATIBLE),
)


@dataclass(frozen=True)
class Identification:
    status: str
    version: str | None = None
    matched_by: str | None = None
    executable_format: str | None = None
    hashes: tuple[str, ...] = ()

    @property
    def recognized(self) -> bool:
        return self.status == STATUS_MATCHED

    @property
    def supported_format(self) -> bool:
        return self.status != STATUS_UNSUPPORTED_FORMAT

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "version": self.version,
            "matched_by": self.matched_by,
            "executable_format": self.executable_format,
        }


def program_hashes(program: Any) -> dict[str, str]:
    hashes = {}
    md5 = maybe_call(program, "getExecutableMD5")
    if md5:
        hashes["md5"] = str(md5)
    sha256 = maybe_call(program, "getExecutableSHA256")
    if sha256:
        hashes["sha256"] = str(sha256)
    return hashes


def identify(
    program: Any,
    known_builds: Iterable[KnownBuild] = KNOWN_BUILDS,
    *,
    allow_unhashed_builds: bool = True,
) -> Identification:
    """Match the loaded program against the known builds, first match wins."""

    executable_format = maybe_call(program, "getExecutableFormat")
    executable_format = str(executable_format) if executable_format is not None else None
    if executable_format != SUPPORTED_EXECUTABLE_FORMAT:
        return Identification(
            status=STATUS_UNSUPPORTED_FORMAT,
            executable_format=executable_format,
        )

    # Fingerprints are MD5s; the SHA-256 is only carried for reporting.
    md5 = program_hashes(program).get("md5")
    hashes = (md5,) if md5 else ()
    for build in known_builds:
        if build.is_wildcard:
            if allow_unhashed_builds:
                return Identification(
                    status=STATUS_MATCHED,
                    version=build.version,
                    matched_by=MATCHED_BY_WILDCARD,
                    executable_format=executable_format,
                    hashes=hashes,
                )
            continue
        matched_by = build.fingerprint.match(hashes)
        if matched_by:
            return Identification(
                status=STATUS_MATCHED,
                version=build.version,
                matched_by=matched_by,
                executable_format=executable_format,
                hashes=hashes,
            )
    return Identification(
        status=STATUS_UNRECOGNIZED,
        executable_format=executable_format,
        hashes=hashes,
    )


def identify_version(
    program: Any,
    known_builds: Iterable[KnownBuild] = KNOWN_BUILDS,
    *,
    allow_unhashed_builds: bool = True,
) -> str | None:
    return identify(
        program,
        known_builds,
        allow_unhashed_builds=allow_unhashed_builds,
    ).version
