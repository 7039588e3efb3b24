"""Task attachment storage. Files live under uploads/tasks/{task_id}/...; the task row keeps relative paths."""
import secrets
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from crew_command import config as app_config


def get_upload_base() -> Path:
    base = app_config.settings.upload_dir
    if not base.is_absolute():
        base = app_config.BASE_DIR / base
    return base


def save_task_file(task_id: int, content: bytes, filename: str, uploaded_by: Optional[int]) -> Dict[str, Any]:
    """
    Write to uploads/tasks/{task_id}/{random}_{name} and return the attachment descriptor
    stored on the task: name, path (relative to the upload root), size, uploaded_at, uploaded_by.
    """
    safe_name = Path(filename or "file").name or "file"
    rel_dir = Path("tasks") / str(task_id)
    dest_dir = get_upload_base() / rel_dir
    dest_dir.mkdir(parents=True, exist_ok=True)
    stored = f"{secrets.token_hex(4)}_{safe_name}"
    (dest_dir / stored).write_bytes(content)
    return {
        "name": safe_name,
        "path": (rel_dir / stored).as_posix(),
        "size": len(content),
        "uploaded_at": datetime.utcnow().isoformat(timespec="seconds"),
        "uploaded_by": uploaded_by,
    }


def resolve_task_file_path(relative_path: str) -> Path:
    if not relative_path:
        raise ValueError("relative_path is empty")
    base = get_upload_base().resolve()
    path = (base / relative_path).resolve()
    if base not in path.parents:
        raise ValueError("path escapes the upload directory")
    return path


def delete_task_file(relative_path: str) -> None:
    path = resolve_task_file_path(relative_path)
    if path.exists():
        path.unlink()
