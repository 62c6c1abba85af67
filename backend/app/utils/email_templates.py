import html
import logging
import re
from datetime import datetime
from pathlib import Path

from app.schemas.request import REASON_TEXTS, DeletionRequestRecord

logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"

PLACEHOLDER_PATTERN = re.compile(r"\{\{ (\w+) \}\}")

CONFIRMATION_SUBJECT = "Confirm Your UniTok Account Deletion Request"


class EmailTemplates:
    """Renders the outbound emails and the HTML pages of the deletion flow.

    Templates live in ``app/templates`` and use ``{{ variable }}`` placeholders.
    Values are HTML-escaped unless the variable name ends in ``_html``.
    """

    _template_cache: dict[str, str] = {}

    @classmethod
    def _load_template(cls, template_name: str) -> str | None:
        """Load a template file, with caching"""
        if template_name in cls._template_cache:
            return cls._template_cache[template_name]

        template_path = TEMPLATE_DIR / template_name
        if not template_path.exists():
            logger.warning(f"Template not found: {template_path}")
            return None

        try:
            content = template_path.read_text(encoding="utf-8")
            cls._template_cache[template_name] = content
            return content
        except OSError as e:
            logger.error(f"Failed to load template {template_name}: {e}")
            return None

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the template cache (useful for testing or hot-reload)"""
        cls._template_cache.clear()

    @staticmethod
    def _render_template(template: str, context: dict) -> str:
        """Simple template rendering using {{ variable }} syntax.

        Placeholders are filled in one pass, so braces inside a value are
        never expanded. Unknown placeholders are left as they are.
        """

        def substitute(match: re.Match) -> str:
            key = match.group(1)
            if key not in context:
                return match.group(0)
            value = str(context[key])
            return value if key.endswith("_html") else html.escape(value)

        return PLACEHOLDER_PATTERN.sub(substitute, template)

    @classmethod
    def _render_page(cls, title: str, body_html: str) -> str:
        layout = cls._load_template("page_layout.html")
        if layout is None:
            return f"<!DOCTYPE html><html><head><title>{html.escape(title)} - UniTok</title></head><body>{body_html}</body></html>"
        return cls._render_template(layout, {"title": title, "body_html": body_html})

    @classmethod
    def generate_confirmation_email(
        cls, confirmation_link: str, expiry_hours: int, support_email: str = ""
    ) -> tuple[str, str]:
        """
        Generate the email asking the requester to confirm the deletion

        Returns:
            (subject, html_body)
        """
        context = {
            "confirmation_link": confirmation_link,
            "expiry_hours": expiry_hours,
            "support_email": support_email,
            "year": datetime.now().year,
        }

        template = cls._load_template("confirmation_email.html")
        if template:
            body = cls._render_template(template, context)
        else:
            logger.warning("Using fallback template for confirmation email")
            body = cls._generate_fallback_confirmation(confirmation_link, expiry_hours)

        return CONFIRMATION_SUBJECT, body

    @classmethod
    def generate_support_notice(cls, request: DeletionRequestRecord) -> tuple[str, str]:
        """
        Generate the notice telling the support team a deletion was confirmed

        Returns:
            (subject, html_body)
        """
        subject = f"Account Deletion Request - {request.email}"
        confirmed_at = request.confirmed_at.strftime(TIMESTAMP_FORMAT) if request.confirmed_at else "-"
        context = {
            "email": request.email,
            "reason_text": request.reason_text,
            "feedback": request.feedback or "None provided",
            "token": request.token,
            "created_at": request.created_at.strftime(TIMESTAMP_FORMAT),
            "confirmed_at": confirmed_at,
        }

        template = cls._load_template("support_notice.html")
        if template:
            body = cls._render_template(template, context)
        else:
            logger.warning("Using fallback template for support notice")
            body = "".join(
                f"<p><strong>{html.escape(key)}:</strong> {html.escape(str(value))}</p>"
                for key, value in context.items()
            )

        return subject, body

    @staticmethod
    def _generate_fallback_confirmation(confirmation_link: str, expiry_hours: int) -> str:
        """Generate fallback email body if template file is unavailable"""
        link = html.escape(confirmation_link)
        return f"""<p>We received a request to delete your UniTok account associated with this email address.</p>
<p>If you made this request, confirm it here: <a href="{link}">{link}</a></p>
<p>This link will expire in {expiry_hours} hours. If you did not request this, you can safely ignore this email.</p>
"""

    @classmethod
    def render_request_form(cls) -> str:
        """Deletion request form page"""
        options = "\n".join(
            f'<option value="{html.escape(code)}">{html.escape(text)}</option>'
            for code, text in REASON_TEXTS.items()
        )
        template = cls._load_template("request_form.html") or "<form method=\"post\">{{ options_html }}</form>"
        body = cls._render_template(template, {"options_html": options})
        return cls._render_page("Delete Your Account", body)

    @classmethod
    def render_confirmed_page(cls) -> str:
        return cls._render_message_page(
            "Deletion Confirmed",
            "&#9989;",
            [
                "Your account deletion request has been confirmed.",
                "Our team has been notified and will process your request shortly.",
            ],
            link_url="https://home.unitokapp.com/",
            link_label="Return to UniTok",
        )

    @classmethod
    def render_already_used_page(cls) -> str:
        return cls._render_message_page(
            "Link Already Used",
            "&#9989;",
            [
                "This confirmation link has already been used.",
                "Your deletion request was confirmed successfully and is being processed by our team.",
            ],
            link_url="https://home.unitokapp.com/",
            link_label="Return to UniTok",
        )

    @classmethod
    def render_error_page(
        cls, title: str, message: str, description: str, link_url: str = "/request-deletion"
    ) -> str:
        return cls._render_message_page(
            title, "&#10007;", [message, description], link_url, "Submit New Request"
        )

    @classmethod
    def _render_message_page(
        cls, title: str, icon_html: str, paragraphs: list[str], link_url: str, link_label: str
    ) -> str:
        template = cls._load_template("message_page.html")
        context = {
            "title": title,
            "icon_html": icon_html,
            "paragraphs_html": "\n".join(f"<p>{html.escape(p)}</p>" for p in paragraphs),
            "link_url": link_url,
            "link_label": link_label,
        }
        if template is None:
            template = "<h1>{{ title }}</h1>{{ paragraphs_html }}<a href=\"{{ link_url }}\">{{ link_label }}</a>"
        return cls._render_page(title, cls._render_template(template, context))
