import logging
import threading
from typing import Dict, Optional

from azure.core.exceptions import ResourceExistsError
from azure.storage.blob import BlobServiceClient, ContentSettings

from externalize.router import (RouteInfo, StorageAdapter, StorageHandle, StorageRouter,
                                dumps_payload, loads_payload)
from utils.mongo import close_quietly, connect_to_mongo

logger = logging.getLogger(__name__)


def create_blob_service_client(connection_string: str) -> BlobServiceClient:
    """Create a BlobServiceClient with retry settings suited to flaky links."""
    return BlobServiceClient.from_connection_string(
        connection_string,
        max_single_put_size=64 * 1024 * 1024,  # 64MB for single uploads
        retry_total=3,                         # Retry 3 times
        retry_connect=3,                       # Retry connections
        retry_read=3,                          # Retry reads
        retry_status=3,                        # Retry status codes
        timeout=30                             # 30 second timeout
    )


class AzureBlobAdapter(StorageAdapter):
    """JSON bodies stored as blobs, one container per bucket."""

    def __init__(self, service_client: BlobServiceClient):
        self.service_client = service_client

    def ensure_bucket(self, bucket: str) -> None:
        try:
            self.service_client.get_container_client(bucket).create_container()
            logger.info(f"Created blob container: {bucket}")
        except ResourceExistsError:
            pass

    def put_json(self, bucket, key, payload):
        body = dumps_payload(payload).encode('utf-8')
        blob_client = self.service_client.get_blob_client(container=bucket, blob=key)
        blob_client.upload_blob(
            body,
            overwrite=True,
            content_settings=ContentSettings(content_type='application/json'),
            timeout=30
        )
        logger.debug(f"Uploaded {len(body)} bytes to {bucket}/{key}")

    def get_json(self, bucket, key):
        blob_client = self.service_client.get_blob_client(container=bucket, blob=key)
        data = blob_client.download_blob(timeout=30).readall()
        return loads_payload(data)


class AzureStorageRouter(StorageRouter):
    """
    Single-tenant router: heads go to one Mongo deployment, bodies to one
    Azure Blob container.
    """

    def __init__(self, cfg, database_override: Optional[str] = None, client_factory=connect_to_mongo):
        self.cfg = cfg
        self.database_override = database_override
        self.client_factory = client_factory
        self._clients: Dict[str, object] = {}
        self._blob_service_client = None
        self._lock = threading.Lock()

    def route(self, database, collection):
        return RouteInfo(
            database=self.database_override or database,
            collection=collection,
            mongo_uri=self.cfg.head_mongodb_uri,
        )

    def get_client(self, route_info: RouteInfo):
        """Get or create a shared client per Mongo URI."""
        uri = route_info.mongo_uri
        if not uri:
            raise ValueError("No Mongo URI configured for head documents")
        with self._lock:
            if uri not in self._clients:
                self._clients[uri] = self.client_factory(uri, self.cfg)
            return self._clients[uri]

    def get_blob_service_client(self) -> BlobServiceClient:
        """Get or create the shared BlobServiceClient."""
        if self._blob_service_client is None:
            with self._lock:
                if self._blob_service_client is None:
                    connection_string = self.cfg.AZURE_STORAGE_CONNECTION_STRING
                    if not connection_string:
                        raise ValueError("Azure storage configuration missing")
                    self._blob_service_client = create_blob_service_client(connection_string)
        return self._blob_service_client

    def get_storage_handle(self, route_info):
        adapter = AzureBlobAdapter(self.get_blob_service_client())
        bucket = self.cfg.AZURE_CONTAINER_NAME
        adapter.ensure_bucket(bucket)
        return StorageHandle(adapter=adapter, bucket=bucket)

    def shutdown(self):
        with self._lock:
            for client in self._clients.values():
                close_quietly(client, 'head')
            self._clients.clear()
            if self._blob_service_client is not None:
                try:
                    self._blob_service_client.close()
                except Exception as e:
                    logger.warning(f"⚠️  Failed to close blob service client: {e}")
                self._blob_service_client = None
