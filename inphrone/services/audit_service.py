"""Admin action audit log."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from inphrone.database.base_repository import BaseRepository


class AuditService:
    """Service for working with the audit log."""

    @staticmethod
    async def log_action(
        admin_username: str,
        action_type: str,
        entity_type: str,
        entity_id: Optional[int] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Record an admin action.

        Args:
            admin_username: Acting administrator
            action_type: What was done (MODERATE_QUESTION, CREATE_COUPON, ...)
            entity_type: Kind of record touched (question, opinion, coupon, ...)
            entity_id: Record id
            old_value: Previous state, JSON-serialized
            new_value: New state, JSON-serialized
            reason: Free-text justification
            ip_address: Request origin
            user_agent: Request user agent

        Returns:
            Id of the audit entry
        """
        created_at = (now or datetime.now(timezone.utc)).isoformat()
        return await BaseRepository.insert(
            """
            INSERT INTO audit_log (
                admin_username, action_type, entity_type, entity_id,
                old_value, new_value, reason, ip_address, user_agent, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                admin_username,
                action_type,
                entity_type,
                entity_id,
                json.dumps(old_value) if old_value is not None else None,
                json.dumps(new_value) if new_value is not None else None,
                reason,
                ip_address,
                user_agent,
                created_at,
            ),
        )

    @staticmethod
    async def get_audit_logs(
        limit: int = 100,
        offset: int = 0,
        admin_username: Optional[str] = None,
        action_type: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch audit entries, newest first, with optional filters."""
        query = "SELECT * FROM audit_log WHERE 1=1"
        params: List[Any] = []

        if admin_username:
            query += " AND admin_username = ?"
            params.append(admin_username)

        if action_type:
            query += " AND action_type = ?"
            params.append(action_type)

        if entity_type:
            query += " AND entity_type = ?"
            params.append(entity_type)

        if entity_id is not None:
            query += " AND entity_id = ?"
            params.append(entity_id)

        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        rows = await BaseRepository.fetch_all(query, params)
        logs = []
        for row in rows:
            log = {key: row[key] for key in row.keys()}
            for field_name in ("old_value", "new_value"):
                if log.get(field_name):
                    log[field_name] = json.loads(log[field_name])
            logs.append(log)
        return logs

    @staticmethod
    async def get_entity_history(entity_type: str, entity_id: int) -> List[Dict[str, Any]]:
        return await AuditService.get_audit_logs(
            limit=1000, entity_type=entity_type, entity_id=entity_id
        )
