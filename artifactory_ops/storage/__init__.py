from artifactory_ops.storage.files import FileStore, LocalFileStore

__all__ = ['FileStore', 'LocalFileStore']
