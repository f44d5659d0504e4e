"""
Raw Jira issue -> canonical JSON document.

Every issue goes through two Jinja2 templates:
  1. COMMON_FORMAT_TEMPLATE, built in, extracting the fields every project has.
  2. The query's ResponseTemplate, written by an operator, producing the
     query-specific custom fields.
Both must render to JSON objects. The custom object is merged into the
common one under "customFields".

Templates see the raw issue as ``issue`` (e.g. ``{{ issue.fields.summary }}``).
Missing nested fields are chainable-undefined, so ``default(none) | tojson``
renders them as null instead of failing.
"""
import json
import logging
from typing import Any, Dict, Optional

from jinja2 import ChainableUndefined, TemplateError as JinjaTemplateError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from jirasync.models.query import ResponseTemplate

logger = logging.getLogger(__name__)

COMMON_FORMAT_TEMPLATE = """{
  "issueId": {{ issue.id | default(none) | tojson }},
  "issueKey": {{ issue.key | default(none) | tojson }},
  "description": {{ issue.fields.description | default(none) | tojson }},
  "projectKey": {{ issue.fields.project.key | default(none) | tojson }},
  "projectName": {{ issue.fields.summary | default(none) | tojson }},
  "reporter": {{ issue.fields.reporter.displayName | default(none) | tojson }},
  "created": {{ issue.fields.created | default(none) | tojson }},
  "updated": {{ issue.fields.updated | default(none) | tojson }},
  "status": {{ issue.fields.status.name | default(none) | tojson }}
}"""


class TransformError(Exception):
    """Template missing, template broken, or output not a JSON object."""


class TemplateRenderer:
    """Sandboxed Jinja2 renderer producing JSON objects."""

    def __init__(self):
        self._env = SandboxedEnvironment(undefined=ChainableUndefined, autoescape=False)
        self._compiled: Dict[str, Any] = {}

    def render(self, raw_item: Dict[str, Any], template_body: str) -> Dict[str, Any]:
        """
        Render ``template_body`` against ``raw_item`` and parse the result.

        Raises:
            TransformError: on syntax errors, sandbox violations, render
                failures, or output that is not a JSON object.
        """
        try:
            template = self._compiled.get(template_body)
            if template is None:
                template = self._env.from_string(template_body)
                self._compiled[template_body] = template
            rendered = template.render(issue=raw_item)
        except SecurityError as exc:
            raise TransformError(f"Sandbox violation: {exc}") from exc
        except JinjaTemplateError as exc:
            raise TransformError(f"Template rendering failed: {exc}") from exc

        try:
            document = json.loads(rendered)
        except ValueError as exc:
            raise TransformError(f"Template did not produce valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise TransformError(
                f"Template must produce a JSON object, got {type(document).__name__}"
            )
        return document


class RecordTransformer:
    """
    Looks up the query's template and renders one issue into canonical JSON.

    Args:
        templates: Object with ``find_template_by_id(id) -> ResponseTemplate | None``.
        renderer: TemplateRenderer (shared so compiled templates are reused).
    """

    def __init__(self, templates, renderer: Optional[TemplateRenderer] = None):
        self.templates = templates
        self.renderer = renderer or TemplateRenderer()

    def transform(self, raw_item: Dict[str, Any], template_id: int) -> str:
        """Return the canonical JSON string for ``raw_item``."""
        if not raw_item:
            raise TransformError("Jira issue payload is empty")

        template: Optional[ResponseTemplate] = self.templates.find_template_by_id(template_id)
        if template is None:
            raise TransformError(f"Response template not found: {template_id}")

        common = self.renderer.render(raw_item, COMMON_FORMAT_TEMPLATE)
        custom = self.renderer.render(raw_item, template.template_body)
        common["customFields"] = custom

        logger.debug(
            "Transformed issue %s with template %s",
            raw_item.get("key", "unknown"), template.template_name,
        )
        return json.dumps(common, ensure_ascii=False)
