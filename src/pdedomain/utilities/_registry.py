from typing import Dict, List

from pdedomain.errors import DuplicateNameError, NotFoundError

from ._api_tools import setup_object


class NamedRegistry(setup_object):
    """
    Ordered, name-keyed collection of setup entities.

    Subclasses set ``_entity_label`` (used in error messages) and build
    entities in their own ``add`` method before handing them to
    ``_register``.
    """

    _entity_label = "Entity"

    def __init__(self):
        super().__init__()
        self._entries: Dict[str, object] = {}

    def _register(self, name, entity):
        self._check_mutable()

        if name in self._entries:
            raise DuplicateNameError(
                f"{self._entity_label} '{name}' already exists", entity=name
            )

        self._entries[name] = entity
        self._increment()
        return entity

    def get(self, name):
        """Entity by name (raises NotFoundError)"""
        if hasattr(name, "name") and not isinstance(name, str):
            name = name.name

        try:
            return self._entries[name]
        except KeyError:
            raise NotFoundError(
                f"{self._entity_label} '{name}' is not defined; known: {self.names()}",
                entity=name,
            )

    def names(self) -> List[str]:
        return list(self._entries.keys())

    def freeze(self):
        super().freeze()
        for entity in self._entries.values():
            entity.freeze()

    def __contains__(self, name):
        return name in self._entries

    def __iter__(self):
        return iter(self._entries.values())

    def __len__(self):
        return len(self._entries)

    def _object_viewer(self):
        lines = [f"**{self._entity_label} registry** ({len(self)} entries)", ""]
        for entity in self._entries.values():
            lines.extend(entity._object_viewer())
        return lines
