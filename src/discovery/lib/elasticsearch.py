"""Shared Elasticsearch utilities.

Helpers for working with Elasticsearch responses that are used by every
Elasticsearch-backed store.
"""

import logging

from elastic_transport import ObjectApiResponse, TransportError
from elasticsearch import ApiError

from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)


def unwrap_es_response(resp) -> dict:
    """Unwrap an Elasticsearch response, handling both ObjectApiResponse and dict.

    Raises :class:`StoreUnavailable` if the response type is unexpected.
    """
    if isinstance(resp, ObjectApiResponse):
        return resp.body
    elif isinstance(resp, dict):
        return resp
    else:
        logger.error("Unexpected Elasticsearch response type: %s", type(resp))
        raise StoreUnavailable("Invalid Elasticsearch response")


async def search_hits(es, index: str, **kwargs) -> list[dict]:
    """Run ``es.search`` and return the ``_source`` of every hit.

    Transport and API errors are re-raised as :class:`StoreUnavailable`.
    """
    try:
        resp = await es.search(index=index, **kwargs)
    except (ApiError, TransportError) as exc:
        logger.exception("Elasticsearch search failed", extra={"index": index})
        raise StoreUnavailable(
            "Elasticsearch request failed", {"index": index}
        ) from exc

    data = unwrap_es_response(resp)
    return [hit.get("_source") or {} for hit in data.get("hits", {}).get("hits", [])]
