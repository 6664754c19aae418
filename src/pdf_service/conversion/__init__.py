"""
Domain layer for HTML to PDF conversion.
Provides interfaces (gateways), the conversion gate and a service that runs
the external renderer under it, so front-ends (HTTP or others) share the same
core logic.
"""

from .adapters import SubprocessRenderer, TokenSecurity
from .gate import ConversionGate
from .interfaces import RendererGateway, RenderOutcome, SecurityGateway
from .service import ConversionService
