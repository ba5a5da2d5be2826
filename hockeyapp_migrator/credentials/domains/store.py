"""Contract for secret stores that receive migrated credentials."""
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import DomainSpecification, SecretRecord


class SecretStore(ABC):
    """A scoped secret store organised into security domains."""

    def is_available(self) -> bool:
        """Whether the store can be reached and written to."""
        return True

    @abstractmethod
    def lookup(self, scope_context: Optional[str],
               domain_requirement: Optional[str] = None) -> List[SecretRecord]:
        """
        List secrets visible from scope_context.

        Args:
            scope_context: Full name of the job doing the lookup, or None for global
            domain_requirement: Base url the secrets must apply to. Global
                secrets apply to every base url. None lists everything.

        Returns:
            Matching secret records (values may be unrevealed)
        """

    @abstractmethod
    def reveal(self, record: SecretRecord) -> Optional[str]:
        """Return the plaintext value of a secret."""

    @abstractmethod
    def domains(self) -> List[DomainSpecification]:
        """List the custom domains known to the store."""

    @abstractmethod
    def is_domains_modifiable(self) -> bool:
        """Whether new domains can be created."""

    @abstractmethod
    def add_credentials(self, domain: Optional[DomainSpecification], record: SecretRecord) -> None:
        """Add a secret to an existing domain, or the global scope when domain is None.

        Raises:
            StoreWriteFailure: If the secret cannot be created
        """

    @abstractmethod
    def add_domain(self, domain: DomainSpecification, record: SecretRecord) -> None:
        """Create a domain together with its first secret.

        Raises:
            StoreWriteFailure: If the domain or secret cannot be created
        """
