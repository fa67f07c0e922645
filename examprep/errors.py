class ExamPrepError(Exception):
    """Base class for errors raised by the scoring pipeline."""


class NotFoundError(ExamPrepError):
    """A referenced test or attempt does not exist. Retrying cannot fix this."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
