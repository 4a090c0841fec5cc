# designvc/services/gcp_clients.py
from functools import lru_cache
from google.cloud import storage as gcs


@lru_cache(maxsize=4)
def get_storage_client(project: str | None = None) -> gcs.Client:
    return gcs.Client(project=project)
