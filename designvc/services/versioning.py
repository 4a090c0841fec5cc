# designvc/services/versioning.py
"""
Git-like version history for a single design.

    commit   -> new version with the next number (V1, V2, ...)
    log      -> every version, newest first
    revert   -> new version pointing back at an older one (no PNG copy)
    diff     -> shallow field comparison of two versions
    delete   -> drop a version + its PNG, then close the gap in numbering

Version numbers are handed out by the database: the unique constraint on
`version_number` makes a losing concurrent commit fail its insert, and the
store simply retries with a fresh max. On SQLite every write transaction
opens with BEGIN IMMEDIATE, so the max is read under the write lock and
commits queue up instead of colliding.
"""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from designvc.models.schemas import VersionChanges, VersionDiff, VersionOut
from designvc.models.version import DEFAULT_AUTHOR, DesignVersion, utcnow
from designvc.services.db import Database
from designvc.services.storage import BlobDeleteFailed, BlobStore
from designvc.utils.png import decode_png_base64

logger = logging.getLogger(__name__)

_KEY_PREFIX = "design-versions"     # keep it in one place


class VersionNotFound(Exception):
    pass


class PersistenceError(Exception):
    pass


def preview_key(version_number: int) -> str:
    """Blob key for a version's PNG. The token stops a later commit that
    reuses a number (after a delete) from overwriting a live preview."""
    return f"{_KEY_PREFIX}/v{version_number}-{uuid.uuid4().hex[:8]}.png"


def default_message(version_number: int) -> str:
    return f"Version {version_number}"


class VersionStore:
    def __init__(self, db: Database, blobs: BlobStore, max_attempts: int = 5):
        self._db = db
        self._blobs = blobs
        self.max_attempts = max(1, int(max_attempts))

    # ───────── COMMIT ─────────
    def commit(
        self,
        commit_message: Optional[str] = None,
        png_base64: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> DesignVersion:
        """Create a new version (like `git commit`), uploading the PNG if given."""
        version = self._reserve(commit_message, created_by)
        n = version.version_number
        logger.info(f"Reserved V{n} (id={version.id})")

        if png_base64:
            url = self._upload_preview(png_base64, n)
            if url:
                version = self._attach_preview(version, url)

        logger.info(f"Version {version.version_number} created (preview={'yes' if version.preview_url else 'no'})")
        return version

    def _next_number(self, session) -> int:
        current = session.scalar(select(func.max(DesignVersion.version_number)))
        return 1 if current is None else int(current) + 1

    def _reserve(self, commit_message: Optional[str], created_by: Optional[str]) -> DesignVersion:
        for attempt in range(1, self.max_attempts + 1):
            try:
                with self._db.session() as s:
                    with s.begin():
                        self._db.lock_for_write(s)
                        n = self._next_number(s)
                        row = DesignVersion(
                            version_number=n,
                            commit_message=commit_message or default_message(n),
                            created_by=created_by or DEFAULT_AUTHOR,
                            created_at=utcnow(),
                        )
                        s.add(row)
                    return row
            except IntegrityError:
                logger.warning(f"Version number collision on attempt {attempt}/{self.max_attempts}, retrying")
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to create version: {exc}") from exc

        raise PersistenceError(
            f"Could not allocate a version number after {self.max_attempts} attempts"
        )

    def _upload_preview(self, png_base64: str, version_number: int) -> Optional[str]:
        logger.info(f"Uploading PNG for V{version_number} to {self._blobs.name}")
        try:
            payload = decode_png_base64(png_base64)
            result = self._blobs.upload(payload, preview_key(version_number))
        except Exception as exc:
            # never fail the commit over its preview
            logger.warning(f"PNG upload failed for V{version_number}: {exc}")
            return None

        if not result.success or not result.url:
            logger.warning(f"PNG upload failed for V{version_number}: {result.error}")
            return None
        logger.info(f"Uploaded V{version_number} preview: {result.url}")
        return result.url

    def _attach_preview(self, version: DesignVersion, url: str) -> DesignVersion:
        try:
            with self._db.session() as s:
                with s.begin():
                    self._db.lock_for_write(s)
                    row = s.get(DesignVersion, version.id)
                    if row is None:
                        # deleted between reserve and upload
                        logger.warning(f"Version id={version.id} vanished before its preview was attached")
                        return version
                    row.preview_url = url
                return row
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to attach preview to version id={version.id}: {exc}") from exc

    # ───────── READ ─────────
    def list_history(self) -> List[DesignVersion]:
        """Every version, newest number first (like `git log`)."""
        try:
            with self._db.session() as s:
                stmt = select(DesignVersion).order_by(DesignVersion.version_number.desc())
                return list(s.scalars(stmt))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list versions: {exc}") from exc

    def get_by_id(self, version_id: int) -> DesignVersion:
        try:
            with self._db.session() as s:
                row = s.get(DesignVersion, version_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load version id={version_id}: {exc}") from exc
        if row is None:
            raise VersionNotFound(f"Version id {version_id} not found")
        return row

    def get_by_number(self, version_number: int) -> DesignVersion:
        try:
            with self._db.session() as s:
                row = s.scalar(
                    select(DesignVersion).where(DesignVersion.version_number == version_number)
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load V{version_number}: {exc}") from exc
        if row is None:
            raise VersionNotFound(f"Version {version_number} not found")
        return row

    # ───────── REVERT ─────────
    def revert(self, target_version: int, created_by: Optional[str] = None) -> DesignVersion:
        """
        Commit a new version recording a return to `target_version`.

        The PNG is not carried over: a stored preview cannot be turned back
        into a design, so the new version has no preview until the caller
        commits one.
        """
        self.get_by_number(target_version)
        logger.info(f"Reverting to V{target_version}")
        return self.commit(
            commit_message=f"Reverted to V{target_version}",
            created_by=created_by or DEFAULT_AUTHOR,
        )

    # ───────── DIFF ─────────
    def compare(self, version1: int, version2: int) -> VersionDiff:
        try:
            v1 = self.get_by_number(version1)
            v2 = self.get_by_number(version2)
        except VersionNotFound as exc:
            raise VersionNotFound(f"One or both versions not found ({version1}, {version2})") from exc

        return VersionDiff(
            version1=VersionOut.model_validate(v1),
            version2=VersionOut.model_validate(v2),
            changes=VersionChanges(
                preview_url_changed=v1.preview_url != v2.preview_url,
                commit_message_changed=v1.commit_message != v2.commit_message,
            ),
        )

    # ───────── DELETE ─────────
    def delete(self, version_number: int) -> bool:
        """Delete a version and its PNG, then shift later versions down by one."""
        version = self.get_by_number(version_number)
        logger.info(f"Deleting version {version_number}...")

        if version.preview_url:
            self._delete_blob(version.preview_url)

        try:
            with self._db.session() as s:
                with s.begin():
                    self._db.lock_for_write(s)
                    row = s.get(DesignVersion, version.id)
                    if row is None:
                        raise VersionNotFound(f"Version {version_number} not found")
                    deleted_number = row.version_number
                    s.delete(row)
                    s.flush()
                    shifted = self._close_gap(s, deleted_number)
        except SQLAlchemyError as exc:
            logger.exception(f"Failed to delete version {version_number}")
            raise PersistenceError(f"Failed to delete version {version_number}: {exc}") from exc

        logger.info(f"Version {version_number} deleted, renumbered {shifted} later version(s)")
        return True

    def _delete_blob(self, url: str) -> None:
        logger.info(f"Deleting PNG {url}")
        try:
            if not self._blobs.delete(url):
                raise BlobDeleteFailed(f"{self._blobs.name} store could not delete {url}")
        except Exception as exc:
            # never block the record delete on its PNG
            logger.warning(f"Failed to delete PNG: {exc}; continuing with record deletion")

    @staticmethod
    def _close_gap(session, deleted_number: int) -> int:
        # ascending, one row at a time: V(k+1)->Vk is always free by then
        later = session.execute(
            select(DesignVersion.id, DesignVersion.version_number)
            .where(DesignVersion.version_number > deleted_number)
            .order_by(DesignVersion.version_number.asc())
        ).all()
        for version_id, number in later:
            session.execute(
                update(DesignVersion)
                .where(DesignVersion.id == version_id)
                .values(version_number=number - 1)
            )
        return len(later)

    # ───────── MAINTENANCE ─────────
    def renumber(self, dry_run: bool = False) -> int:
        """
        Re-densify numbers to 1..N keeping the current order (number, then id).
        Returns how many rows need / got a new number.
        """
        try:
            with self._db.session() as s:
                with s.begin():
                    self._db.lock_for_write(s)
                    rows = s.execute(
                        select(DesignVersion.id, DesignVersion.version_number)
                        .order_by(DesignVersion.version_number.asc(), DesignVersion.id.asc())
                    ).all()
                    moves = [
                        (version_id, target)
                        for target, (version_id, number) in enumerate(rows, start=1)
                        if number != target
                    ]
                    if dry_run or not moves:
                        return len(moves)

                    # park on -id first so no final number is ever taken twice
                    for version_id, _ in moves:
                        s.execute(
                            update(DesignVersion)
                            .where(DesignVersion.id == version_id)
                            .values(version_number=-version_id)
                        )
                    for version_id, target in moves:
                        s.execute(
                            update(DesignVersion)
                            .where(DesignVersion.id == version_id)
                            .values(version_number=target)
                        )
                    return len(moves)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to renumber versions: {exc}") from exc
