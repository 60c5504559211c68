"""Error taxonomy shared by the indexing and query pipelines."""


class MenuBotError(Exception):
    """Base class for every failure the core reports to its caller."""


class SourceUnavailable(MenuBotError):
    """The catalog record source could not be read."""


class EmbeddingFailure(MenuBotError):
    """The embedding provider failed to embed a text."""


class SearchFailure(MenuBotError):
    """The vector store failed to answer a similarity search."""


class ProviderFailure(MenuBotError):
    """The completion or speech provider failed."""


class StoreWriteFailure(MenuBotError):
    """The vector store failed to clear or insert documents."""
