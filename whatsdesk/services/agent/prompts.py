"""Prompt templates with declared placeholders."""

import re
from dataclasses import dataclass, field
from typing import Mapping
from uuid import uuid4

import structlog

from whatsdesk.core.exceptions import PromptTemplateNotFound, ValidationError
from whatsdesk.models import TENANT_PROMPT_VARIABLES, PromptTemplate
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()

PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
MIN_PROMPT_LENGTH = 50
ROLE_HINTS = ("assistente", "atendimento", "assistant")


@dataclass
class PromptValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def placeholders(body: str) -> list[str]:
    """Placeholder names in order of first appearance."""
    return list(dict.fromkeys(PLACEHOLDER.findall(body)))


def validate_prompt(body: str, variables: list[str]) -> PromptValidation:
    """Check a template body against its declared variables.

    Undeclared placeholders and variables no tenant can supply are errors;
    declared but unused variables are warnings.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if len(body.strip()) < MIN_PROMPT_LENGTH:
        errors.append(f"Prompt must be at least {MIN_PROMPT_LENGTH} characters long")

    used = placeholders(body)
    for name in variables:
        if name not in TENANT_PROMPT_VARIABLES:
            errors.append(f"Variable {{{name}}} is not a known tenant variable")
        elif name not in used:
            warnings.append(f"Variable {{{name}}} is declared but not used")

    for name in used:
        if name not in variables:
            errors.append(f"Variable {{{name}}} is used but not declared")

    if not any(hint in body.lower() for hint in ROLE_HINTS):
        warnings.append("Prompt should state the assistant's role")

    return PromptValidation(valid=not errors, errors=errors, warnings=warnings)


def render_prompt(template: PromptTemplate, values: Mapping[str, str]) -> str:
    """Substitute every declared placeholder.

    Missing values render as an empty string and are logged; values for
    names the template does not declare are ignored.

    Raises:
        ValidationError: If the body uses an undeclared placeholder
    """
    declared = set(template.variables)
    undeclared = [name for name in placeholders(template.body) if name not in declared]
    if undeclared:
        raise ValidationError(
            "Prompt template uses undeclared variables",
            details={"template_id": template.id, "variables": undeclared},
        )

    missing = sorted(name for name in declared if not values.get(name))
    if missing:
        logger.warning("Prompt variables without value", template_id=template.id, variables=missing)

    return PLACEHOLDER.sub(lambda m: str(values.get(m.group(1)) or ""), template.body)


class PromptTemplateService:
    """Manages the global prompt templates."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    async def create(
        self,
        name: str,
        body: str,
        variables: list[str],
        description: str | None = None,
        version: str = "1.0.0",
        created_by: str | None = None,
    ) -> tuple[PromptTemplate, PromptValidation]:
        validation = validate_prompt(body, variables)
        if not validation.valid:
            raise ValidationError(
                "Invalid prompt template",
                details={"errors": validation.errors, "warnings": validation.warnings},
            )

        template = PromptTemplate(
            id=str(uuid4()),
            name=name,
            version=version,
            body=body,
            variables=variables,
            description=description,
            created_by=created_by,
        )
        await self.storage.save_prompt_template(template)
        logger.info("Prompt template created", template_id=template.id, warnings=len(validation.warnings))
        return template, validation

    async def get(self, template_id: str) -> PromptTemplate:
        template = await self.storage.get_prompt_template(template_id)
        if template is None:
            raise PromptTemplateNotFound(template_id)
        return template

    async def list_templates(self) -> list[PromptTemplate]:
        return await self.storage.list_prompt_templates()

    async def get_active(self) -> PromptTemplate | None:
        return await self.storage.get_active_prompt_template()

    async def activate(self, template_id: str) -> PromptTemplate:
        template = await self.storage.activate_prompt_template(template_id)
        if template is None:
            raise PromptTemplateNotFound(template_id)
        logger.info("Prompt template activated", template_id=template_id)
        return template
