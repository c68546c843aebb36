import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from memory_merge.config import Settings
from memory_merge.knowledge_service import KnowledgeService
from memory_merge.web.dependencies import get_app_settings, get_knowledge_service
from memory_merge.web.edge import run_with_edge_policy
from memory_merge.web.schemas import StoreCommand, UpdateCommand, knowledge_request_adapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["knowledge"])


@router.post("/knowledge")
async def knowledge(
    payload: Dict[str, Any] = Body(...),
    service: KnowledgeService = Depends(get_knowledge_service),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """Store, update or delete the vector of a knowledge entry, selected by ``action``."""
    command = knowledge_request_adapter.validate_python(payload)

    if isinstance(command, StoreCommand):
        entry = command.entry.to_entry()
        vector_id = await run_with_edge_policy(
            lambda: service.store(command.account_id, command.firebase_doc_id, entry), settings
        )
        return {"success": True, "id": vector_id, "firebaseDocId": command.firebase_doc_id}

    if isinstance(command, UpdateCommand):
        updates = command.updates.to_update()
        await run_with_edge_policy(
            lambda: service.update(command.vector_id, updates, command.firebase_doc_id), settings
        )
        return {"success": True, "id": command.vector_id}

    await run_with_edge_policy(lambda: service.delete(command.vector_id), settings)
    return {"success": True, "id": command.vector_id}
