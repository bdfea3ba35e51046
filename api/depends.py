from fastapi import Depends
from services.cache import get_cache_client
from services.storage import get_blob_store
from auth.security import get_current_client
from data.database import get_db

# --- DEPENDENCY INJECTION SETUP ---
CLIENT_AUTH = Depends(get_current_client)
DB_DEPENDENCY = Depends(get_db)
CACHE_CLIENT = Depends(get_cache_client)
BLOB_STORE = Depends(get_blob_store)
