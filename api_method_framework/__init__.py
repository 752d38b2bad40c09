from api_method_framework.api_method import ApiMethod
from api_method_framework.config_loader import EngineSpec, SpecValidationError, SuiteStep, load_engine_spec
from api_method_framework.descriptors import ContentKind, DescriptorRegistry, MethodDescriptor
from api_method_framework.errors import (
    ApiMethodError,
    ConfigurationError,
    MissingResponseTemplateError,
    PollTimeoutError,
    PreconditionError,
    ResourceLoadError,
    ResourceNotFoundError,
    ResponseMismatchError,
    StatusMismatchError,
    TemplateRenderError,
)
from api_method_framework.json_compare import ARRAY_CONTAINS, JsonComparator, JsonComparatorContext, JsonCompareMode
from api_method_framework.poller import LogStrategy, PollHandle, PollSpec
from api_method_framework.properties import CryptoProcessor, GenerateProcessor, PropertyStore, load_properties
from api_method_framework.reporter import Reporter
from api_method_framework.suite import StepResult, SuiteRunner
from api_method_framework.templates import TemplateRenderer
from api_method_framework.transport import RequestsTransport, Transport, TransportResponse
from api_method_framework.xml_compare import XmlComparator, XmlCompareMode

__all__ = [
    "ARRAY_CONTAINS",
    "ApiMethod",
    "ApiMethodError",
    "ConfigurationError",
    "ContentKind",
    "CryptoProcessor",
    "DescriptorRegistry",
    "EngineSpec",
    "GenerateProcessor",
    "JsonComparator",
    "JsonComparatorContext",
    "JsonCompareMode",
    "LogStrategy",
    "MethodDescriptor",
    "MissingResponseTemplateError",
    "PollHandle",
    "PollSpec",
    "PollTimeoutError",
    "PreconditionError",
    "PropertyStore",
    "Reporter",
    "RequestsTransport",
    "ResourceLoadError",
    "ResourceNotFoundError",
    "ResponseMismatchError",
    "SpecValidationError",
    "StatusMismatchError",
    "StepResult",
    "SuiteRunner",
    "SuiteStep",
    "TemplateRenderError",
    "TemplateRenderer",
    "Transport",
    "TransportResponse",
    "XmlComparator",
    "XmlCompareMode",
    "load_engine_spec",
    "load_properties",
]
