import asyncio
import logging
import uuid as uuid_lib
from typing import List, Set

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import get_current_user_id
from app.core.config import settings
from app.core.errors import ReadingCoreError, TransientFetchError, to_http_exception
from app.schemas.book import Book, CandidateFilter
from app.schemas.recommendation import ReadingDNA, RecommendationItem, RecommendationsResponse
from app.services import recommendation_engine
from app.services.reading_dna import ReadingDNAProvider, get_dna_provider
from app.services.storage import ReadingStore, get_reading_store
from app.utils.instrumentation import log_event_best_effort
from app.utils.timing import log_elapsed, now_ms

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommendations"])


async def load_candidates(store: ReadingStore, dna: ReadingDNA, owned_ids: Set[str]) -> List[Book]:
    """
    Candidate pool for scoring: the most popular unowned books, plus the most
    popular ones in the reader's dominant genres so a large catalog never
    hides a strong genre match behind the limit.
    """
    limit = settings.RECOMMENDATION_CANDIDATE_LIMIT
    fetches = [store.get_candidate_books(CandidateFilter(exclude_ids=owned_ids, limit=limit))]
    if dna.dominant_genres:
        fetches.append(
            store.get_candidate_books(
                CandidateFilter(exclude_ids=owned_ids, genres=dna.dominant_genres, limit=limit)
            )
        )
    pools = await asyncio.gather(*fetches)
    # Duplicates across pools are dropped by the engine
    return [book for pool in reversed(pools) for book in pool]


@router.get("/recommendations", response_model=RecommendationsResponse)
async def get_recommendations(
    limit: int = Query(5, ge=1, le=50),
    debug: bool = Query(False, description="Include score factors in response"),
    user_id: str = Depends(get_current_user_id),
    store: ReadingStore = Depends(get_reading_store),
    dna_provider: ReadingDNAProvider = Depends(get_dna_provider),
):
    t0 = now_ms()
    request_id = str(uuid_lib.uuid4())

    dna_result, owned_result = await asyncio.gather(
        dna_provider.get_reading_dna(user_id),
        store.get_user_books(user_id),
        return_exceptions=True,
    )

    if isinstance(owned_result, BaseException):
        logger.warning("Could not load library for user %s: %s", user_id, owned_result)
        if isinstance(owned_result, ReadingCoreError):
            raise to_http_exception(owned_result)
        raise HTTPException(status_code=500, detail="internal_error")
    owned_ids = {ub.book_id for ub in owned_result}

    if isinstance(dna_result, TransientFetchError):
        # Still recommend something: popularity-only ranking
        logger.warning("Reading DNA unavailable for user %s, degrading: %s", user_id, dna_result)
        dna = ReadingDNA()
    elif isinstance(dna_result, BaseException):
        logger.error("Reading DNA failed for user %s: %r", user_id, dna_result)
        raise HTTPException(status_code=500, detail="internal_error")
    else:
        dna = dna_result

    if settings.DEBUG:
        t1 = log_elapsed(t0, f"req_id={request_id} user={user_id} dna_and_library", logger.debug)
    else:
        t1 = now_ms()

    try:
        candidates = await load_candidates(store, dna, owned_ids)
        scored = recommendation_engine.top_scored(dna, candidates, owned_ids, limit)
    except ReadingCoreError as e:
        logger.warning("Recommendations failed for user %s: %s", user_id, e)
        raise to_http_exception(e)

    if settings.DEBUG:
        log_elapsed(t1, f"req_id={request_id} user={user_id} candidates_and_scoring", logger.debug)

    items = [
        RecommendationItem(
            book_id=book.id,
            title=book.title,
            authors=book.authors,
            genres=book.genres,
            page_count=book.page_count,
            average_rating=book.average_rating,
            ratings_count=book.ratings_count,
            published_year=book.published_year,
            score=round(score, 4),
            score_factors=factors if debug else None,
        )
        for book, score, factors in scored
    ]

    book_ids = [item.book_id for item in items]
    log_event_best_effort(
        event_name="recommendations_impression",
        user_id=user_id,
        properties={
            "request_id": request_id,
            "count": len(items),
            "top_book_id": book_ids[0] if book_ids else None,
            "book_ids": book_ids,
            "degraded": dna.is_empty,
        },
        request_id=request_id,
    )

    logger.info(
        "Served %d recommendations to user %s in %.2fms (degraded=%s)",
        len(items), user_id, now_ms() - t0, dna.is_empty,
    )
    return RecommendationsResponse(
        request_id=request_id,
        items=items,
        degraded=dna.is_empty,
        dna=dna if debug else None,
    )
