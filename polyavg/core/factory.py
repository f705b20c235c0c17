"""
Factory for domain transforms.
"""

from typing import Dict, Type

from polyavg.core.exceptions import InvalidDomainError
from polyavg.core.logging_config import get_logger
from polyavg.quadrature.transforms import (
    Domain,
    DomainTransform,
    IdentityTransform,
    InfiniteTransform,
    SemiInfiniteTransform,
)

logger = get_logger("core.factory")


class TransformFactory:
    """Registry of domain transforms by name."""

    _transforms: Dict[str, Type[DomainTransform]] = {}

    # default transform name per domain kind
    _defaults: Dict[str, str] = {
        "finite": "identity",
        "semi_infinite_upper": "semi_infinite",
        "semi_infinite_lower": "semi_infinite",
        "infinite": "infinite",
    }

    @classmethod
    def register(cls, name: str, transform_class: Type[DomainTransform]) -> None:
        """
        Register a transform class.

        Parameters
        ----------
        name : str
            Transform name
        transform_class : Type[DomainTransform]
            Transform class
        """
        cls._transforms[name] = transform_class
        logger.debug(f"Registered transform: {name}")

    @classmethod
    def create(cls, name: str, domain: Domain) -> DomainTransform:
        """
        Create a transform for a domain.

        Parameters
        ----------
        name : str
            Transform name
        domain : Domain
            Physical domain the transform must accept

        Returns
        -------
        DomainTransform

        Raises
        ------
        InvalidDomainError
            If the name is unknown or the transform does not fit the domain
        """
        if name not in cls._transforms:
            available = ", ".join(sorted(cls._transforms.keys()))
            raise InvalidDomainError(f"Unknown transform: {name}. Available: {available}")
        return cls._transforms[name](domain)

    @classmethod
    def for_domain(cls, domain: Domain) -> DomainTransform:
        """Create the default transform for a domain's shape."""
        return cls.create(cls._defaults[domain.kind], domain)

    @classmethod
    def list_transforms(cls) -> list:
        """List registered transform names."""
        return sorted(cls._transforms.keys())


TransformFactory.register("identity", IdentityTransform)
TransformFactory.register("semi_infinite", SemiInfiniteTransform)
TransformFactory.register("infinite", InfiniteTransform)
