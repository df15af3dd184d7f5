"""quarrydb ORM layer: Active Record models on top of the query builder."""
from quarrydb.orm.attributes import AttributeStore, VisibilityPolicy
from quarrydb.orm.builder import ModelBuilder
from quarrydb.orm.guard import GuardPolicy
from quarrydb.orm.model import Model

__all__ = [
    "AttributeStore",
    "GuardPolicy",
    "Model",
    "ModelBuilder",
    "VisibilityPolicy",
]
