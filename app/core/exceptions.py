class CreationCoreError(Exception):
    """Base class for errors raised by the creation core."""


class SchemaNotFound(CreationCoreError, KeyError):
    """Unknown entity kind. Always a configuration/programming error."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No form schema registered for entity type '{kind}'")

    def __str__(self):
        return self.args[0]


class TemplateNotFound(SchemaNotFound):
    """Unknown prompt template id."""

    def __init__(self, template_id: str):
        self.kind = template_id
        self.template_id = template_id
        Exception.__init__(self, f"Prompt template '{template_id}' is not registered")


class ExternalProviderFailure(CreationCoreError):
    """The language-model provider raised or returned nothing usable."""

    def __init__(self, provider: str, cause: Exception = None):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} request failed: {cause}")
