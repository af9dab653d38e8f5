from .base_repository import BaseRepository
from .mongo_helper import MongoRepositorySingleton
from .model import Model, clear_models, get_model, model, registered_models
