import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from memory_merge.config import Settings
from memory_merge.search_service import HybridSearchService
from memory_merge.web.dependencies import get_app_settings, get_search_service
from memory_merge.web.edge import run_with_edge_policy
from memory_merge.web.schemas import RecentCommand, SearchCommand, search_request_adapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"])


@router.post("/search")
async def search(
    payload: Dict[str, Any] = Body(...),
    service: HybridSearchService = Depends(get_search_service),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """
    Hybrid search, recent entries or tag browse, selected by ``action``.

    Returns:
        ``{"success": true, "results": [...]}``
    """
    command = search_request_adapter.validate_python(payload)
    options = command.options

    if isinstance(command, SearchCommand):
        search_options = options.to_options() if options else None
        results = await run_with_edge_policy(
            lambda: service.search(command.account_id, command.query, command.tags, search_options),
            settings,
        )
    elif isinstance(command, RecentCommand):
        limit = settings.default_match_count
        if options is not None and options.limit is not None:
            limit = options.limit
        elif options is not None and options.match_count is not None:
            limit = options.match_count
        results = await run_with_edge_policy(
            lambda: service.recent(command.account_id, limit), settings
        )
    else:
        limit = options.limit if options is not None and options.limit is not None else None
        results = await run_with_edge_policy(
            lambda: service.by_tags(command.account_id, command.tags, limit), settings
        )

    logger.info(f"{command.action} returned {len(results)} results (account={command.account_id})")
    return {"success": True, "results": [result.model_dump(mode="json") for result in results]}
