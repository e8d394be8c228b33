"""
Composite Identities - Lossless format/parse of multi-part resource IDs.
"""

from typing import Tuple

from errors import MalformedIdentityError

DEFAULT_SEPARATOR = ","


class CompositeIdentity:
    """
    An identity made of several named parts joined by a separator.

    For example an ECS task set is addressed as
    ``TASK_SET_ID,SERVICE,CLUSTER``.
    """

    def __init__(self, *part_names: str, separator: str = DEFAULT_SEPARATOR):
        if not part_names:
            raise ValueError("CompositeIdentity needs at least one part name")
        self.part_names = part_names
        self.separator = separator

    @property
    def expected_format(self) -> str:
        return self.separator.join(name.upper() for name in self.part_names)

    def format(self, *parts: str) -> str:
        """
        Join parts into an identity string.

        Raises:
            MalformedIdentityError: On a wrong part count, an empty part, or
                a part containing the separator.
        """
        if len(parts) != len(self.part_names):
            raise MalformedIdentityError(
                f"expected {len(self.part_names)} identity parts "
                f"({self.expected_format}), got {len(parts)}"
            )
        for name, part in zip(self.part_names, parts):
            if not part:
                raise MalformedIdentityError(f"identity part '{name}' is empty")
            if self.separator in part:
                raise MalformedIdentityError(
                    f"identity part '{name}' ({part!r}) contains "
                    f"separator {self.separator!r}"
                )
        return self.separator.join(parts)

    def parse(self, identity: str) -> Tuple[str, ...]:
        """
        Split an identity string into its parts.

        Raises:
            MalformedIdentityError: On a wrong part count or any empty part.
        """
        parts = identity.split(self.separator)
        if len(parts) != len(self.part_names) or any(p == "" for p in parts):
            raise MalformedIdentityError(
                f"unexpected format of ID ({identity!r}), "
                f"expected {self.expected_format}"
            )
        return tuple(parts)
