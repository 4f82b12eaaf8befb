"""Read access to saved banner templates, keyed by their unique URL slug.

Templates are JSON documents ``{unique_url, name, design, parameters}``. They
live either on local disk under ``STORAGE_DIR/templates`` or in an S3 (MinIO)
bucket, following the same ``STORAGE_MODE`` switch as the rest of the service.
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

import aiofiles
from botocore.exceptions import ClientError
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class StoredTemplate(BaseModel):
    unique_url: str
    name: str
    design: str = "default"
    parameters: Dict[str, Any] = Field(default_factory=dict)


class TemplateStore(Protocol):
    async def get(self, slug: str) -> Optional[StoredTemplate]:
        ...

    def save(self, template: StoredTemplate) -> Any:
        """Seed or replace a template. The HTTP routes only read; templates are
        written by whatever provisions them (fixtures, migrations, admin scripts)."""
        ...


def is_valid_slug(slug: str) -> bool:
    return bool(SLUG_RE.match(slug or ""))


def merge_template_params(template: StoredTemplate, overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Saved parameters first, request-time overrides on top.

    Empty override values do not clobber saved ones. The template's own
    design is used when neither side names one.
    """
    merged: Dict[str, Any] = dict(template.parameters)
    for key, value in overrides.items():
        if value is None or value == "":
            continue
        merged[key] = value
    if not merged.get("design"):
        merged["design"] = template.design or "default"
    return merged


class LocalTemplateStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, slug: str) -> Path:
        return self.root / f"{slug}.json"

    async def get(self, slug: str) -> Optional[StoredTemplate]:
        if not is_valid_slug(slug):
            return None
        path = self._path(slug)
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            raw = await f.read()
        return StoredTemplate.model_validate(json.loads(raw))

    def save(self, template: StoredTemplate) -> Path:
        if not is_valid_slug(template.unique_url):
            raise ValueError(f"Invalid template slug: {template.unique_url!r}")
        path = self._path(template.unique_url)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(template.model_dump_json(indent=2), encoding="utf-8")
        return path


class S3TemplateStore:
    def __init__(self, client: Any, bucket: str, prefix: str = "templates/"):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix

    def _key(self, slug: str) -> str:
        return f"{self.prefix}{slug}.json"

    def _get_sync(self, slug: str) -> Optional[StoredTemplate]:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self._key(slug))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404", "NotFound"):
                return None
            raise
        body = obj["Body"].read()
        return StoredTemplate.model_validate(json.loads(body))

    async def get(self, slug: str) -> Optional[StoredTemplate]:
        if not is_valid_slug(slug):
            return None
        return await asyncio.to_thread(self._get_sync, slug)

    def save(self, template: StoredTemplate) -> str:
        if not is_valid_slug(template.unique_url):
            raise ValueError(f"Invalid template slug: {template.unique_url!r}")
        key = self._key(template.unique_url)
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=template.model_dump_json(indent=2).encode("utf-8"),
            ContentType="application/json",
        )
        return key


def make_template_store(mode: str, storage_dir: Path, s3_client: Any = None, bucket: str = "templates") -> TemplateStore:
    if mode == "s3":
        if s3_client is None:
            raise ValueError("STORAGE_MODE=s3 requires an S3 client")
        logger.info(f"Template store: s3 bucket={bucket}")
        return S3TemplateStore(s3_client, bucket)
    root = Path(storage_dir) / "templates"
    root.mkdir(parents=True, exist_ok=True)
    logger.info(f"Template store: local dir={root}")
    return LocalTemplateStore(root)
