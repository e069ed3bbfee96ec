import os
from dotenv import load_dotenv
load_dotenv()

class Config:
    """Base configuration."""
    # Connection strings
    MONGODB_SOURCE_URI = os.environ.get('MONGODB_SOURCE_URI') or ''
    MONGODB_DESTINATION_URI = os.environ.get('MONGODB_DESTINATION_URI') or ''
    # Where head documents are written in xronox mode (defaults to the source deployment)
    XRONOX_MONGODB_URI = os.environ.get('XRONOX_MONGODB_URI') or ''

    # Mongo client settings (long timeouts for fragile links)
    MONGO_CONNECT_TIMEOUT_MS = int(os.environ.get('MONGO_CONNECT_TIMEOUT_MS', '3600000'))
    MONGO_SOCKET_TIMEOUT_MS = int(os.environ.get('MONGO_SOCKET_TIMEOUT_MS', '3600000'))
    MONGO_SERVER_SELECTION_TIMEOUT_MS = int(os.environ.get('MONGO_SERVER_SELECTION_TIMEOUT_MS', '120000'))

    # Copy engine
    CLONE_PAGE_SIZE = int(os.environ.get('CLONE_PAGE_SIZE', '10'))
    CLONE_MAX_RETRIES = int(os.environ.get('CLONE_MAX_RETRIES', '7'))
    CLONE_RETRY_BASE_MS = int(os.environ.get('CLONE_RETRY_BASE_MS', '500'))
    CLONE_RETRY_CAP_MS = int(os.environ.get('CLONE_RETRY_CAP_MS', '20000'))

    # Azure Blob Storage Configuration
    AZURE_STORAGE_CONNECTION_STRING = os.environ.get('AZURE_STORAGE_CONNECTION_STRING') or ''
    AZURE_CONTAINER_NAME = os.environ.get('AZURE_CONTAINER_NAME') or 'xronox'
    XRONOX_PAGE_SIZE = int(os.environ.get('XRONOX_PAGE_SIZE', '50'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @property
    def head_mongodb_uri(self):
        return self.XRONOX_MONGODB_URI or self.MONGODB_SOURCE_URI

class DevelopmentConfig(Config):
    """Development configuration."""
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')

class ProductionConfig(Config):
    """Production configuration."""
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'WARNING')

class TestingConfig(Config):
    """Testing configuration."""
    MONGODB_SOURCE_URI = 'mongodb://localhost:27017'
    MONGODB_DESTINATION_URI = 'mongodb://localhost:27018'
    XRONOX_MONGODB_URI = ''
    AZURE_CONTAINER_NAME = 'xronox-test'
    CLONE_RETRY_BASE_MS = 0  # No sleeping in tests
    CLONE_RETRY_CAP_MS = 0
    LOG_LEVEL = 'DEBUG'

config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
