"""
Versioned case-study dataset.

Layout in the blob store::

    case-studies/snapshots/<run_id>.json    immutable full dataset per run
    case-studies/manifest.json              mutable pointer to the live snapshot
    scout-runs/<run_id>/*.json              best-effort audit artifacts

Publishing writes the snapshot first, then audit artifacts, then the
manifest. Readers resolve the manifest and then fetch the snapshot it names,
so they never see a partially written dataset.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from scout.pipeline.models import CaseStudy, dump_dataset, load_dataset
from scout.research.models import isoformat_utc, utc_now
from scout.store.blob_store import BlobStore, BlobStoreError

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1
MANIFEST_PATH = "case-studies/manifest.json"
SNAPSHOT_PREFIX = "case-studies/snapshots"
AUDIT_PREFIX = "scout-runs"


@dataclass
class Manifest:
    version: int
    updated_at: str
    run_id: str
    count: int
    snapshot_url: str
    added_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "updatedAt": self.updated_at,
            "runId": self.run_id,
            "count": self.count,
            "snapshotUrl": self.snapshot_url,
            "addedIds": list(self.added_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        return cls(
            version=int(data.get("version", MANIFEST_VERSION)),
            updated_at=str(data.get("updatedAt", "")),
            run_id=str(data.get("runId", "")),
            count=int(data.get("count", 0)),
            snapshot_url=str(data["snapshotUrl"]),
            added_ids=[str(i) for i in (data.get("addedIds") or [])],
        )


@dataclass
class PublishResult:
    snapshot_url: str
    manifest_url: str
    manifest: Manifest
    audit_urls: Dict[str, str] = field(default_factory=dict)
    audit_errors: Dict[str, str] = field(default_factory=dict)


class DatasetStore:
    """Publishes and reads the versioned dataset."""

    def __init__(self, blob_store: BlobStore, seed_path: Optional[str] = None):
        self.blob_store = blob_store
        self.seed_path = seed_path

    @staticmethod
    def snapshot_path(run_id: str) -> str:
        return f"{SNAPSHOT_PREFIX}/{run_id}.json"

    def publish(
        self,
        run_id: str,
        dataset: List[CaseStudy],
        added: List[CaseStudy],
        audits: Optional[Dict[str, Any]] = None,
    ) -> PublishResult:
        """
        Publish a new dataset version.

        Args:
            run_id: Run identifier; one snapshot per run id
            dataset: Full merged dataset
            added: Items new in this run
            audits: name -> JSON-serializable artifact, written best-effort

        Returns:
            PublishResult

        Raises:
            BlobExistsError: A snapshot for run_id already exists
        """
        snapshot_url = self.blob_store.write_json_immutable(self.snapshot_path(run_id), dump_dataset(dataset))
        logger.info(f"Wrote snapshot for {run_id} ({len(dataset)} case studies)")

        result_audits: Dict[str, str] = {}
        audit_errors: Dict[str, str] = {}
        for name, artifact in (audits or {}).items():
            path = f"{AUDIT_PREFIX}/{run_id}/{name}.json"
            try:
                result_audits[name] = self.blob_store.write_json_immutable(path, artifact)
            except (BlobStoreError, TypeError, ValueError) as e:
                logger.warning(f"Audit write failed for {path}: {e}")
                audit_errors[name] = str(e)

        manifest = Manifest(
            version=MANIFEST_VERSION,
            updated_at=isoformat_utc(utc_now()),
            run_id=run_id,
            count=len(dataset),
            snapshot_url=snapshot_url,
            added_ids=[cs.id for cs in added],
        )
        manifest_url = self.blob_store.write_json_pointer(MANIFEST_PATH, manifest.to_dict())
        logger.info(f"Manifest now points at {run_id} (+{len(added)} new)")

        return PublishResult(
            snapshot_url=snapshot_url,
            manifest_url=manifest_url,
            manifest=manifest,
            audit_urls=result_audits,
            audit_errors=audit_errors,
        )

    def read_manifest(self) -> Optional[Manifest]:
        """The live manifest, or None before the first publish."""
        if not self.blob_store.exists(MANIFEST_PATH):
            return None
        data = self.blob_store.read_json(self.blob_store.url_for(MANIFEST_PATH))
        return Manifest.from_dict(data)

    def read_dataset(self) -> List[CaseStudy]:
        """
        The live dataset.

        Falls back to the seed file before the first publish, and to an
        empty dataset when there is neither.
        """
        manifest = self.read_manifest()
        if manifest is not None:
            items = self.blob_store.read_json(manifest.snapshot_url)
            if not isinstance(items, list):
                raise BlobStoreError(f"Snapshot is not a list: {manifest.snapshot_url}")
            return load_dataset(items)

        if self.seed_path and Path(self.seed_path).exists():
            with open(self.seed_path, "r") as f:
                items = json.load(f)
            logger.info(f"No published dataset yet; using seed {self.seed_path}")
            return load_dataset(items if isinstance(items, list) else [])

        return []
