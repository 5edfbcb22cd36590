# Core module exports
from .config import *
from .database import db, client, create_database_indexes
