"""MongoDB tree store backed by Motor."""

from __future__ import annotations

from typing import Any

import motor.motor_asyncio
import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from collabhub_workspace.config import settings
from collabhub_workspace.models.tree import File, Folder, Project
from collabhub_workspace.storage.base import TreeStore

logger = structlog.get_logger()

INSERTION_ORDER = [("created_at", ASCENDING), ("_id", ASCENDING)]


def _oid(value: str | None) -> ObjectId | None:
    if value is None:
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_doc(record: File | Folder) -> dict[str, Any]:
    """Serialize a tree record for MongoDB (id becomes _id)."""
    doc = record.model_dump(exclude={"id"}, mode="python")
    if record.id is not None:
        doc["_id"] = ObjectId(record.id)
    return doc


def from_doc(doc: dict[str, Any]) -> dict[str, Any]:
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class MongoTreeStore(TreeStore):
    """Projects, folders and files stored as MongoDB documents."""

    def __init__(
        self,
        uri: str | None = None,
        database: str | None = None,
        client: motor.motor_asyncio.AsyncIOMotorClient | None = None,
    ) -> None:
        self._client = client or motor.motor_asyncio.AsyncIOMotorClient(
            uri or settings.mongodb_url
        )
        self._db = self._client[database or settings.mongodb_database]
        self._projects = self._db["projects"]
        self._folders = self._db["folders"]
        self._files = self._db["files"]
        logger.info("MongoDB tree store created", database=database or settings.mongodb_database)

    async def ensure_indexes(self) -> None:
        """Create the unique indexes the reconciliation rules rely on."""
        await self._files.create_index(
            [("project_id", ASCENDING), ("path", ASCENDING)], unique=True
        )
        await self._files.create_index([("project_id", ASCENDING), ("folder_id", ASCENDING)])
        await self._folders.create_index(
            [("project_id", ASCENDING), ("path", ASCENDING), ("name", ASCENDING)], unique=True
        )
        await self._folders.create_index([("project_id", ASCENDING), ("parent_id", ASCENDING)])

    async def ping(self) -> bool:
        try:
            await self._client.admin.command("ping")
            return True
        except Exception:
            logger.warning("MongoDB ping failed")
            return False

    async def close(self) -> None:
        self._client.close()

    # Projects

    async def get_project(self, project_id: str) -> Project | None:
        oid = _oid(project_id)
        if oid is None:
            return None
        doc = await self._projects.find_one({"_id": oid})
        if not doc:
            return None
        return Project(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            owner=str(doc.get("owner", "")),
            status=doc.get("status", "active"),
        )

    # Files

    async def get_file(self, file_id: str) -> File | None:
        oid = _oid(file_id)
        if oid is None:
            return None
        doc = await self._files.find_one({"_id": oid})
        return File.model_validate(from_doc(doc)) if doc else None

    async def list_files(self, project_id: str) -> list[File]:
        cursor = self._files.find({"project_id": project_id}).sort(INSERTION_ORDER)
        return [File.model_validate(from_doc(doc)) async for doc in cursor]

    async def find_file_by_path(self, project_id: str, path: str) -> File | None:
        doc = await self._files.find_one({"project_id": project_id, "path": path})
        return File.model_validate(from_doc(doc)) if doc else None

    async def find_file_in_folder(
        self, project_id: str, name: str, folder_id: str | None
    ) -> File | None:
        doc = await self._files.find_one(
            {"project_id": project_id, "name": name, "folder_id": folder_id}
        )
        return File.model_validate(from_doc(doc)) if doc else None

    async def insert_file(self, file: File) -> File | None:
        doc = to_doc(file)
        doc.pop("_id", None)
        try:
            result = await self._files.insert_one(doc)
        except DuplicateKeyError:
            logger.debug("Duplicate file skipped", project_id=file.project_id, path=file.path)
            return None
        return file.model_copy(update={"id": str(result.inserted_id)})

    async def update_file(self, file: File) -> None:
        doc = to_doc(file)
        doc.pop("_id", None)
        await self._files.update_one({"_id": ObjectId(file.id)}, {"$set": doc})

    async def delete_file(self, file_id: str) -> bool:
        oid = _oid(file_id)
        if oid is None:
            return False
        result = await self._files.delete_one({"_id": oid})
        return result.deleted_count > 0

    # Folders

    async def get_folder(self, folder_id: str) -> Folder | None:
        oid = _oid(folder_id)
        if oid is None:
            return None
        doc = await self._folders.find_one({"_id": oid})
        return Folder.model_validate(from_doc(doc)) if doc else None

    async def list_folders(self, project_id: str) -> list[Folder]:
        cursor = self._folders.find({"project_id": project_id}).sort(INSERTION_ORDER)
        return [Folder.model_validate(from_doc(doc)) async for doc in cursor]

    async def find_folder(self, project_id: str, path: str, name: str) -> Folder | None:
        doc = await self._folders.find_one({"project_id": project_id, "path": path, "name": name})
        return Folder.model_validate(from_doc(doc)) if doc else None

    async def find_folder_in_parent(
        self, project_id: str, name: str, parent_id: str | None
    ) -> Folder | None:
        doc = await self._folders.find_one(
            {"project_id": project_id, "name": name, "parent_id": parent_id}
        )
        return Folder.model_validate(from_doc(doc)) if doc else None

    async def insert_folder(self, folder: Folder) -> Folder | None:
        doc = to_doc(folder)
        doc.pop("_id", None)
        try:
            result = await self._folders.insert_one(doc)
        except DuplicateKeyError:
            logger.debug(
                "Duplicate folder skipped",
                project_id=folder.project_id,
                path=folder.full_path,
            )
            return None
        return folder.model_copy(update={"id": str(result.inserted_id)})

    async def update_folder(self, folder: Folder) -> None:
        doc = to_doc(folder)
        doc.pop("_id", None)
        await self._folders.update_one({"_id": ObjectId(folder.id)}, {"$set": doc})

    async def delete_folder(self, folder_id: str) -> bool:
        oid = _oid(folder_id)
        if oid is None:
            return False
        result = await self._folders.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def add_file_to_folder(self, folder_id: str, file_id: str) -> None:
        await self._folders.update_one(
            {"_id": ObjectId(folder_id)}, {"$addToSet": {"files": file_id}}
        )

    async def remove_file_from_folder(self, folder_id: str, file_id: str) -> None:
        await self._folders.update_one({"_id": ObjectId(folder_id)}, {"$pull": {"files": file_id}})

    async def add_subfolder(self, folder_id: str, child_id: str) -> None:
        await self._folders.update_one(
            {"_id": ObjectId(folder_id)}, {"$addToSet": {"subfolders": child_id}}
        )

    async def remove_subfolder(self, folder_id: str, child_id: str) -> None:
        await self._folders.update_one(
            {"_id": ObjectId(folder_id)}, {"$pull": {"subfolders": child_id}}
        )
