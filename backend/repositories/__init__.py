from .places import PlacesRepository
from .reviews import ReviewsRepository
from . import models

__all__ = ["PlacesRepository", "ReviewsRepository", "models"]
