"""Side-investment projects and their tag vocabulary.

Stored as one document under the `projects` key:

  v1: {projects: [{..., tag: "defi"}], customTags: [...]}   (no schemaVersion)
  v2: {schemaVersion: 2, projects: [{..., tags: ["defi"]}], customTags: [...]}

`migrate_document` upgrades v1 to v2 once, when the document is loaded.
"""
from __future__ import annotations

import copy

import structlog

from ..errors import NotFoundError, ValidationError
from ..utils import coerce_float, epoch_millis_id, now_utc, now_utc_iso

log = structlog.get_logger()

PROJECTS_KEY = "projects"
SCHEMA_VERSION = 2


def empty_document() -> dict:
    return {"schemaVersion": SCHEMA_VERSION, "projects": [], "customTags": []}


def _migrate_project_v1(project: dict) -> dict:
    out = dict(project)
    tag = out.pop("tag", None)
    if not isinstance(out.get("tags"), list):
        out["tags"] = [tag] if tag else []
    return out


def migrate_document(doc) -> tuple[dict, bool]:
    """Return (v2 document, changed)."""
    if not isinstance(doc, dict):
        return empty_document(), True
    version = doc.get("schemaVersion") or 1
    if version >= SCHEMA_VERSION:
        out = copy.deepcopy(doc)
        out.setdefault("projects", [])
        out.setdefault("customTags", [])
        return out, False
    out = {
        "schemaVersion": SCHEMA_VERSION,
        "projects": [_migrate_project_v1(p) for p in doc.get("projects") or [] if isinstance(p, dict)],
        "customTags": list(doc.get("customTags") or []),
    }
    log.info("projects_schema_migrated", from_version=version, to_version=SCHEMA_VERSION, projects=len(out["projects"]))
    return out, True


def _tags_from(payload: dict) -> list:
    tags = payload.get("tags")
    if isinstance(tags, list):
        return tags
    if payload.get("tag"):
        return [payload["tag"]]
    return []


class ProjectRegistry:
    def __init__(self, store):
        self.store = store
        self._doc: dict | None = None

    def document(self) -> dict:
        if self._doc is None:
            doc, changed = migrate_document(self.store.get(PROJECTS_KEY, None) or empty_document())
            if changed:
                self.store.set(PROJECTS_KEY, doc)
            self._doc = doc
        return self._doc

    def projects(self) -> list[dict]:
        return copy.deepcopy(self.document()["projects"])

    def _save(self):
        self.store.set(PROJECTS_KEY, self._doc)

    def _index_of(self, project_id: str) -> int:
        for i, p in enumerate(self.document()["projects"]):
            if str(p.get("id")) == str(project_id):
                return i
        raise NotFoundError("Project not found")

    def add_project(self, payload: dict) -> dict:
        if not payload.get("name") or payload.get("invested") is None:
            raise ValidationError("Missing required fields: name, invested")
        stamp = now_utc_iso()
        project = {
            "id": epoch_millis_id(),
            "name": payload["name"],
            "tags": _tags_from(payload),
            "invested": coerce_float(payload.get("invested"), 0.0),
            "projectLink": payload.get("projectLink") or "",
            "notionLink": payload.get("notionLink") or "",
            "description": payload.get("description") or "",
            "status": payload.get("status") or "active",
            "startDate": payload.get("startDate") or now_utc().strftime("%Y-%m-%d"),
            "currentValue": coerce_float(payload.get("currentValue")) or None,
            "notes": payload.get("notes") or "",
            "createdAt": stamp,
            "updatedAt": stamp,
        }
        self.document()["projects"].append(project)
        self._save()
        log.info("project_added", id=project["id"], name=project["name"])
        return copy.deepcopy(project)

    def update_project(self, project_id: str, updates: dict) -> dict:
        idx = self._index_of(project_id)
        updates = dict(updates or {})
        updates.pop("id", None)
        if updates.get("tag") and not updates.get("tags"):
            updates["tags"] = [updates["tag"]]
        updates.pop("tag", None)

        projects = self.document()["projects"]
        merged = {**projects[idx], **updates, "updatedAt": now_utc_iso()}
        merged.pop("tag", None)
        projects[idx] = merged
        self._save()
        log.info("project_updated", id=project_id, fields=sorted(updates))
        return copy.deepcopy(merged)

    def delete_project(self, project_id: str):
        idx = self._index_of(project_id)
        del self.document()["projects"][idx]
        self._save()
        log.info("project_deleted", id=project_id)

    def add_tag(self, tag) -> tuple[str, list[str]]:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError("Invalid tag name")
        normalized = tag.strip().lower()
        tags = self.document()["customTags"]
        if normalized in tags:
            raise ValidationError("Tag already exists")
        tags.append(normalized)
        self._save()
        log.info("project_tag_added", tag=normalized)
        return normalized, list(tags)

    def delete_tag(self, tag: str) -> list[str]:
        tags = self.document()["customTags"]
        if tag not in tags:
            raise NotFoundError("Tag not found")
        tags.remove(tag)
        self._save()
        log.info("project_tag_deleted", tag=tag)
        return list(tags)

    def replace_document(self, doc):
        self._doc, _ = migrate_document(doc)
        self._save()
