"""
System map validators.

Contains:
- ComponentValidator - component files exist
- ApiValidator - endpoints are handled
- ReferenceValidator - domain names, schemas, manifests
- FlowValidator - user flow steps resolve
"""

from typing import List

from ..config import AuditConfig
from ..core.base_validator import BaseValidator
from .api import ApiValidator
from .component import ComponentValidator
from .flow import FlowValidator
from .reference import ReferenceValidator


def build_validators(config: AuditConfig) -> List[BaseValidator]:
    """Validators enabled by ``validation.*``, in reporting order."""
    validation = config.validation
    validators: List[BaseValidator] = []
    if validation.components:
        validators.append(ComponentValidator())
    if validation.apis:
        validators.append(ApiValidator())
    if validation.references:
        validators.append(ReferenceValidator())
    if validation.flows:
        validators.append(FlowValidator())
    return validators
