"""IaaS Client Interface

Machine creation and termination are handled outside the synchronization core.
"""

from abc import ABC, abstractmethod

from ..entities import Instance


class IIaasClient(ABC):
    """
    Abstract interface for the IaaS collaborator

    Provisioning and termination timeouts belong to the implementation.
    """

    @abstractmethod
    async def terminate_machine(self, application_name: str, root_instance: Instance) -> None:
        """
        Terminate the machine hosting a root instance

        Args:
            application_name: Owning application
            root_instance: Root instance whose machine must be deleted
        """
        pass
