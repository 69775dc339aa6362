"""
Domain layer for office-to-PDF conversion.
Provides interfaces (gateways), their local adapters, and a service that
orchestrates conversion jobs so front-ends (HTTP or others) can share the
same core logic.
"""

from .interfaces import ConversionJob, ConverterGateway, JobStatus, JobStore
from .adapters import LibreOfficeConverter, MemoryJobStore
from .service import ConversionService, JobResult
