"""
Models for the overall stack: the service descriptors and the dependency
graph between them.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, model_validator
from .service_definition import ServiceDescriptor, ServiceRole

class OrchestrationConfig(BaseModel):
    """
    Complete definition of the stack.

    ``services`` is keyed by service name; each descriptor's ``depends_on``
    lists the services that must be ready before it starts. Together they form
    a directed acyclic graph, which DependencyResolver orders.
    """
    model_config = ConfigDict(frozen=True)

    services: Dict[str, ServiceDescriptor]
    network: str
    subnet: Optional[str] = None

    @model_validator(mode="after")
    def _check_edges(self) -> "OrchestrationConfig":
        for name, svc in self.services.items():
            for dep in svc.depends_on:
                if dep not in self.services:
                    raise ValueError(f"Service {name} depends on unknown service {dep}")
        app = self.by_role(ServiceRole.APPLICATION)
        if app is not None:
            required = {
                d.name for d in self.services.values()
                if d.role in (ServiceRole.DATASTORE, ServiceRole.CACHE)
            }
            missing = required - set(app.depends_on)
            if missing:
                raise ValueError(
                    f"Application {app.name} must depend on {', '.join(sorted(missing))}"
                )
        return self

    def by_role(self, role: ServiceRole) -> Optional[ServiceDescriptor]:
        for svc in self.services.values():
            if svc.role == role:
                return svc
        return None

    def dependencies_of(self, name: str) -> List[ServiceDescriptor]:
        return [self.services[dep] for dep in self.services[name].depends_on]

    def dependents_of(self, name: str) -> List[ServiceDescriptor]:
        return [svc for svc in self.services.values() if name in svc.depends_on]
