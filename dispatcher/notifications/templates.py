"""Template rendering for notification emails using Jinja2.

Each notification type maps to one template in the
``dispatcher.notifications`` package's ``email_templates`` directory; unknown
types use the neutral fallback. Strict undefined checking surfaces template
mistakes as NotificationTemplateError instead of silently blank emails.
"""

import logging
from typing import Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from dispatcher.grouping.models import DispatchUnit

from .content import build_attachments, build_message_context, build_subject, template_for
from .models import NotificationTemplateError, RenderedMessage

logger = logging.getLogger(__name__)


class MessageRenderer:
    """Renders a dispatch unit into subject, HTML body and attachments.

    Rendering is pure: the same unit and ``app_url`` always produce the same
    message. Templates are cached by the Jinja2 environment.
    """

    def __init__(self, app_url: str, env: Optional[Environment] = None):
        """Initialize renderer.

        Args:
            app_url: Base URL used for call-to-action links
            env: Jinja2 environment (defaults to the packaged templates)
        """
        self.app_url = app_url.rstrip("/")
        self.env = env or Environment(
            loader=PackageLoader("dispatcher.notifications", "email_templates"),
            autoescape=True,
            undefined=StrictUndefined,
        )

    def render(self, unit: DispatchUnit) -> RenderedMessage:
        """Render one dispatch unit.

        Raises:
            NotificationTemplateError: If the template fails to render
        """
        if not unit.entries:
            raise NotificationTemplateError("Cannot render an empty dispatch unit")

        template_name = template_for(unit.notification_type)
        try:
            context = build_message_context(unit, self.app_url)
            subject = build_subject(unit, context["network_name"])
            template = self.env.get_template(template_name)
            html_body = template.render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed for {template_name}: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e

        logger.debug(
            f"Rendered {template_name} for group {unit.group.key} ({len(unit.entries)} entries)"
        )

        return RenderedMessage(
            subject=" ".join(subject.split()),
            html_body=html_body,
            attachments=build_attachments(unit),
        )
