"""Generation status routes consumed by pollers and AI workers."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_current_user, get_feed, get_store
from api.schemas import GenerationCreate, GenerationEnvelope, GenerationPatch
from config import settings
from imagelingo.errors import InvalidTransitionError, StorageError
from imagelingo.generations.feed import InMemoryGenerationFeed
from imagelingo.schemas import Generation, GenerationResult
from imagelingo.storage.generations import GenerationStore
from imagelingo.utils.logger import logger

router = APIRouter(prefix="/api/generations", tags=["generations"])


def _image_url(image_id: str | None) -> str | None:
    if not image_id:
        return None
    return f"{settings.storage_public_url.rstrip('/')}/{image_id}"


def _owned_generation(store: GenerationStore, generation_id: str, user_id: str) -> Generation:
    generation = store.get_generation(generation_id)
    if generation is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    if generation.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return generation


@router.post("", status_code=201, response_model=GenerationEnvelope)
async def create_generation(
    body: GenerationCreate,
    user_id: Annotated[str, Depends(get_current_user)],
    store: Annotated[GenerationStore, Depends(get_store)],
):
    """Queue a new pending generation for the caller."""
    try:
        generation = store.create_generation(user_id, **body.model_dump())
    except StorageError as e:
        logger.error(f"[API] Create generation failed: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"generation": generation}


@router.get("", response_model=list[Generation])
async def list_generations(
    user_id: Annotated[str, Depends(get_current_user)],
    store: Annotated[GenerationStore, Depends(get_store)],
    limit: int = 50,
):
    """List the caller's generations, newest first."""
    return store.list_generations(user_id, limit=limit)


@router.get("/{generation_id}", response_model=GenerationResult)
async def get_generation(
    generation_id: str,
    user_id: Annotated[str, Depends(get_current_user)],
    store: Annotated[GenerationStore, Depends(get_store)],
):
    """Current state of one generation plus its image URLs."""
    generation = _owned_generation(store, generation_id, user_id)
    return GenerationResult(
        generation=generation,
        input_url=_image_url(generation.input_image_id),
        output_url=_image_url(generation.output_image_id),
    )


@router.patch("/{generation_id}", response_model=GenerationEnvelope)
async def update_generation(
    generation_id: str,
    body: GenerationPatch,
    user_id: Annotated[str, Depends(get_current_user)],
    store: Annotated[GenerationStore, Depends(get_store)],
    feed: Annotated[InMemoryGenerationFeed, Depends(get_feed)],
):
    """Apply a status/output update and push it to realtime subscribers."""
    _owned_generation(store, generation_id, user_id)
    try:
        generation = store.update_generation(generation_id, **body.model_dump(exclude_unset=True))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except StorageError as e:
        logger.error(f"[API] Update generation {generation_id} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e

    if generation is None:
        raise HTTPException(status_code=404, detail="Generation not found")

    feed.publish(generation)
    return {"generation": generation}
