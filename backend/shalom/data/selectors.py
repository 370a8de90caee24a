# ------------------------------ IMPORTS ------------------------------
from dataclasses import dataclass, replace
from typing import Optional, Dict

from core.config.settings import settings

# ------------------------------ LOCATOR SPEC ------------------------------

@dataclass(frozen=True)
class LocatorSpec:
    """A named way of finding an element, independent of the workflow using it.

    ``kind`` is one of ``text``, ``role``, ``placeholder`` or ``css``.
    ``value`` may contain ``{}`` placeholders filled by :meth:`format`.
    """
    kind: str
    value: str
    exact: bool = False
    role: Optional[str] = None
    has_text: Optional[str] = None
    nth: Optional[int] = None

    def format(self, *args) -> "LocatorSpec":
        has_text = self.has_text.format(*args) if self.has_text else None
        return replace(self, value=self.value.format(*args), has_text=has_text)

    def describe(self) -> str:
        return f"{self.kind}={self.value!r}"

def text(value: str, exact: bool = False) -> LocatorSpec:
    return LocatorSpec("text", value, exact=exact)

def button(name: str, exact: bool = False) -> LocatorSpec:
    return LocatorSpec("role", name, exact=exact, role="button")

def css(selector: str, has_text: Optional[str] = None, nth: Optional[int] = None) -> LocatorSpec:
    return LocatorSpec("css", selector, has_text=has_text, nth=nth)

def placeholder(value: str) -> LocatorSpec:
    return LocatorSpec("placeholder", value)

# ------------------------------ URLS ------------------------------

@dataclass(frozen=True)
class SiteUrls:
    """Portal locations derived from the configured base URL."""
    base_url: str
    login_marker: str = "login"

    @property
    def root(self) -> str:
        return self.base_url

    @property
    def login(self) -> str:
        return f"{self.base_url}/login"

    @property
    def home(self) -> str:
        return f"{self.base_url}/#/home"

    @property
    def shipments(self) -> str:
        return f"{self.base_url}/#/envios"

    @property
    def shipments_list(self) -> str:
        return f"{self.base_url}/#/envios/list"

    @property
    def pending_shipments(self) -> str:
        return f"{self.base_url}/#/solicitud/pendientes"

DEFAULT_URLS = SiteUrls(base_url=settings.site.base_url.rstrip("/"), login_marker=settings.site.login_marker)

# ------------------------------ PRODUCT TYPES ------------------------------

PRODUCT_TYPES: Dict[str, str] = {
    "sobre": "Sobre",
    "xxs": "Caja Paquete XXS",
    "xs": "Caja Paquete XS",
    "s": "Caja Paquete S",
    "m": "Caja Paquete M",
    "l": "Caja Paquete L",
    "custom": "Otra Medida",
}
DEFAULT_PRODUCT_TYPE = "sobre"
DEFAULT_CONTENT_TYPE = "Documentos"

def product_label(code: Optional[str]) -> str:
    """Map a product code to its on-screen label, falling back to 'Sobre'."""
    return PRODUCT_TYPES.get((code or "").strip().lower(), PRODUCT_TYPES[DEFAULT_PRODUCT_TYPE])

# ------------------------------ LOCATOR TABLE ------------------------------

@dataclass(frozen=True)
class Locators:
    """Every label and selector the workflows rely on.

    A wording change on the portal only needs a new table, not new workflow code.
    """
    # Login
    login_form: LocatorSpec = css('input[type="text"], input[type="email"]')
    login_identifier: LocatorSpec = css('input[type="email"], input[type="text"]')
    login_secret: LocatorSpec = css('input[type="password"]')
    login_submit: LocatorSpec = css('button[type="submit"]')
    login_error: LocatorSpec = text("incorrectas")

    # Single shipment
    continue_button: LocatorSpec = button("Continuar")
    product_type_marker: LocatorSpec = text("¿Qué tipo de producto")
    product_option: LocatorSpec = text("{}", exact=True)
    dimension_input: LocatorSpec = placeholder("{}")
    locations_marker: LocatorSpec = text("¿A dónde")
    location_picker: LocatorSpec = css(".multiselect", has_text="{}")
    location_input: LocatorSpec = placeholder("{}")
    location_suggestion: LocatorSpec = css(".multiselect__content-wrapper .multiselect__option")
    origin_label: str = "Origen"
    destination_label: str = "Destino"
    warranty_accept: LocatorSpec = text("Sí deseo Garantía")
    warranty_decline: LocatorSpec = text("No deseo Garantía")
    recipient_document: LocatorSpec = css('input[placeholder="DNI"]', nth=1)
    recipient_name: LocatorSpec = css('input[placeholder="Nombre"], input[placeholder="Nombres"], input[placeholder="Nombre Completo"]')
    recipient_phone: LocatorSpec = css('input[placeholder="Teléfono"], input[placeholder="Celular"], input[placeholder="Móvil"]')
    secure_billing_accept: LocatorSpec = text("Sí deseo el servicio")
    secure_billing_decline: LocatorSpec = text("No deseo el servicio")
    declaration_marker: LocatorSpec = text("Declaración Jurada")
    content_type_option: LocatorSpec = text("{}", exact=True)
    security_digit: LocatorSpec = button("{}", exact=True)
    success_marker: LocatorSpec = text("Registrado")
    success_text: str = "Registrado"
    error_title: LocatorSpec = css(".swal2-title")

    # Massive shipment
    massive_upload: LocatorSpec = text("Carga masiva de envíos")
    register_menu: LocatorSpec = text("Registra")
    ok_button: LocatorSpec = button("OK")
    massive_code_button: LocatorSpec = css('button[title="Clave de seguridad masiva"]')
    massive_code_fallback: LocatorSpec = css(".btn-warning")
    yes_button: LocatorSpec = button("Sí")
    massive_code_digit: LocatorSpec = css(".input-keyCode-{}")
    generate_button: LocatorSpec = text("GENERAR")
    confirm_button: LocatorSpec = button("Confirmar")
    footer_continue: LocatorSpec = css(".btn-continuar")
    pending_order_label: str = "N° de Orden"
    pending_code_label: str = "Código"
    currency_prefix: str = "S/"
    deleted_class: str = "time-deleted"

DEFAULT_LOCATORS = Locators()

# ------------------------------ END OF FILE ------------------------------
