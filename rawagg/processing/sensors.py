"""
Sensor Identity
===============
Parses the composite sensor key chosen by the user and resolves the label
under which aggregated artifacts are published.
"""

from dataclasses import dataclass
from typing import Iterable

# Composite key separator: "Family||Name||Instance"
KEY_SEPARATOR = "||"


@dataclass(frozen=True)
class SensorIdentity:
    """Sensor family, channel name and (possibly empty) per-study instance."""
    family: str
    name: str
    instance: str = ""

    @classmethod
    def parse(cls, key: str) -> "SensorIdentity":
        """
        Parse a "Family||Name||Instance" key. The instance segment is optional.

        Raises:
            ValueError: if family or name is missing
        """
        parts = key.split(KEY_SEPARATOR)
        if len(parts) not in (2, 3) or not parts[0].strip() or not parts[1].strip():
            raise ValueError(f"Invalid sensor key {key!r}, expected 'Family||Name||Instance'")

        instance = parts[2].strip() if len(parts) == 3 else ""
        return cls(family=parts[0].strip(), name=parts[1].strip(), instance=instance)

    @property
    def key(self) -> str:
        return KEY_SEPARATOR.join([self.family, self.name, self.instance])

    def matches(self, name: str, instance) -> bool:
        """True if a catalog entry (name, instance) is this sensor's stream."""
        return name == self.name and (instance or "") == self.instance


def resolve_artifact_name(identity: SensorIdentity, external_device_families: Iterable[str]) -> str:
    """
    Name used in published artifact labels.

    External devices, and sensors without an instance, are labelled by the
    sensor's display name; everything else by its per-study instance.
    """
    if identity.family in tuple(external_device_families) or not identity.instance:
        return identity.name
    return identity.instance


def raw_data_label(resolved_name: str) -> str:
    return f"Aggregated Raw Data ({resolved_name})"


def falloff_label(resolved_name: str) -> str:
    return f"Falloff ({resolved_name})"
