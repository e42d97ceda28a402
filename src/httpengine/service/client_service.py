"""Top-level HTTP client service used by connectors."""

from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import structlog

from httpengine.auth.oauth import OAuth20FlowExecution
from httpengine.auth.token_cache import TokenCache
from httpengine.engine.engine import HttpExecutionEngine
from httpengine.engine.response import HttpResponse
from httpengine.errors import HttpComponentError
from httpengine.query.builder import QueryConfigurationBuilder
from httpengine.query.models import (
    APIKeyDestination,
    Attachment,
    BodyFormat,
    ProxyType,
    QueryConfiguration,
)
from httpengine.service.request_config import (
    AuthenticationMethod,
    OAuth20Flow,
    PaginationStrategyType,
    RequestConfig,
)
from httpengine.settings import EngineSettings
from httpengine.substitutor.dictionary import RecordDictionary
from httpengine.substitutor.substitutor import PlaceholderConfiguration, Substitutor


logger = structlog.get_logger()


def build_url(base: str, resource: str | None) -> str:
    """Join a base URL and a resource with exactly one slash.

    Args:
        base: Base URL.
        resource: Resource path, may be empty.

    Returns:
        The joined URL.
    """
    base = base.strip()
    if not resource:
        return base

    resource = resource.strip()
    if not resource:
        return base
    if base.endswith("/") and resource.startswith("/"):
        return base + resource[1:]
    if base.endswith("/") or resource.startswith("/"):
        return base + resource
    return f"{base}/{resource}"


class HttpClientService:
    """Invokes descriptors with OAuth 2.0 token caching and die-on-error policy.

    One service instance is meant to be shared by the calls of a connector
    so that OAuth 2.0 tokens are reused across calls.
    """

    def __init__(
        self,
        engine: HttpExecutionEngine | None = None,
        settings: EngineSettings | None = None,
        token_cache: TokenCache | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            engine: Execution engine.
            settings: Engine settings, taken from the engine when given.
            token_cache: OAuth 2.0 token cache.
        """
        self._settings = settings or (engine.settings if engine else EngineSettings())
        self._engine = engine or HttpExecutionEngine(self._settings)
        self._token_cache = token_cache or TokenCache()
        self._log = logger.bind(component="service")

    @property
    def token_cache(self) -> TokenCache:
        """Get the OAuth 2.0 token cache."""
        return self._token_cache

    def invoke(
        self, config: QueryConfiguration, die_on_error: bool = False
    ) -> HttpResponse:
        """Execute a descriptor.

        Args:
            config: Request descriptor.
            die_on_error: Raise for non-2xx statuses.

        Returns:
            The response.

        Raises:
            HttpComponentError: If die_on_error is set and the status is not 2xx.
        """
        key = config.oauth_token_cache_key
        token = None
        if key is not None and config.oauth_call is not None:
            oauth_call = config.oauth_call
            token = self._token_cache.get_or_fetch(
                key,
                lambda: OAuth20FlowExecution(
                    oauth_call, self._engine.invoke, self._settings
                ).execute_flow(),
            )

        response = self._engine.invoke(config, token)

        # The engine fetches a new token if the cached one expired meanwhile
        if key is not None and response.oauth20_token not in (None, token):
            self._token_cache.put(key, response.oauth20_token)

        if die_on_error and not response.is_success:
            msg = f"Response status is not OK: {response.status.code_with_reason}"
            self._log.warning("http_status_not_ok", status_code=response.status.code)
            raise HttpComponentError(msg, response=response)
        return response

    def iterate_pages(
        self, config: QueryConfiguration, die_on_error: bool = False
    ) -> Iterator[HttpResponse]:
        """Execute a descriptor and its following pages.

        Stops when the strategy has no next page or a page holds no element.

        Args:
            config: Request descriptor of the first page.
            die_on_error: Raise for non-2xx statuses.

        Yields:
            One response per page.
        """
        page: QueryConfiguration | None = config
        while page is not None:
            response = self.invoke(page, die_on_error)
            yield response
            if response.get_last_page_count() <= 0:
                return
            page = response.next_page_query_configuration()

    def convert_configuration(
        self,
        request_config: RequestConfig,
        input_record: Mapping[str, Any] | None = None,
    ) -> QueryConfiguration:
        """Build a descriptor from a connector request configuration.

        Args:
            request_config: Connector request configuration.
            input_record: Upstream record. When given, ``{.input...}``
                placeholders are replaced with its values.

        Returns:
            The built descriptor.
        """
        dataset = request_config.dataset
        datastore = dataset.datastore
        builder = QueryConfigurationBuilder.create(
            build_url(datastore.base, dataset.resource), self._settings
        )
        builder.set_method(dataset.method_type)
        builder.set_connection_timeout(datastore.connection_timeout)
        builder.set_receive_timeout(datastore.receive_timeout)

        self._configure_authentication(builder, request_config)

        if datastore.use_proxy:
            proxy = datastore.proxy_configuration
            if proxy.proxy_type == ProxyType.HTTP:
                builder.set_http_proxy(
                    proxy.proxy_host,
                    proxy.proxy_port,
                    proxy.proxy_login,
                    proxy.proxy_password,
                )
            else:
                builder.set_socks_proxy(proxy.proxy_host, proxy.proxy_port)

        builder.bypass_certificate_validation(datastore.bypass_certificate_validation)

        builder.accept_redirection(dataset.accept_redirections)
        if dataset.accept_redirections:
            builder.set_max_number_of_accepted_redirections_on_same_uri(
                dataset.max_redirect_on_same_url
            ).accept_only_same_host_redirection(dataset.only_same_host)

        if dataset.has_path_params:
            for param in dataset.path_params:
                builder.add_path_param(param.key, param.value)
        if dataset.has_query_params:
            for param in dataset.query_params:
                builder.add_query_param(param.key, param.value)
        if dataset.has_headers:
            for param in dataset.headers:
                builder.add_header(param.key, param.value)

        if dataset.has_body:
            body = dataset.body
            if body.type == BodyFormat.FORM_DATA:
                for param in body.params:
                    builder.add_multipart_form_data_body_param(param.key, param.value)
            elif body.type == BodyFormat.X_WWW_FORM_URLENCODED:
                for param in body.params:
                    builder.add_x_www_form_urlencoded_body_param(param.key, param.value)
            elif body.type == BodyFormat.JSON:
                builder.set_json_body(body.text_content)
            elif body.type == BodyFormat.XML:
                builder.set_xml_body(body.text_content)
            else:
                builder.set_raw_text_body(body.text_content)

        if request_config.upload_files:
            for attachment in self._load_upload_files(request_config):
                builder.add_attachment(attachment)

        if (
            dataset.has_pagination
            and dataset.pagination.strategy == PaginationStrategyType.OFFSET_LIMIT
        ):
            offset_limit = dataset.pagination.offset_limit_strategy_config
            builder.set_offset_limit_pagination(
                offset_limit.location,
                offset_limit.offset_param_name,
                offset_limit.offset_value,
                offset_limit.limit_param_name,
                offset_limit.limit_value,
                offset_limit.elements_path,
            )

        # Support Content-Encoding: gzip
        builder.decompress_response_payload(True)

        if input_record is None:
            return builder.build()

        placeholders = PlaceholderConfiguration(
            opener=self._settings.input_placeholder_opener,
            closer=self._settings.input_placeholder_closer,
            key_prefix=self._settings.input_placeholder_prefix,
        )
        return builder.build(Substitutor(placeholders, RecordDictionary(input_record)))

    @staticmethod
    def _configure_authentication(
        builder: QueryConfigurationBuilder, request_config: RequestConfig
    ) -> None:
        authentication = request_config.dataset.datastore.authentication
        method = authentication.type

        if method == AuthenticationMethod.BASIC:
            builder.set_basic_authentication(
                authentication.basic.username, authentication.basic.password
            )
        elif method == AuthenticationMethod.DIGEST:
            builder.set_digest_authentication(
                authentication.basic.username, authentication.basic.password
            )
        elif method == AuthenticationMethod.NTLM:
            builder.set_ntlm_authentication(
                authentication.ntlm.username, authentication.ntlm.password
            )
        elif method == AuthenticationMethod.BEARER:
            builder.set_authorization_token(authentication.bearer_token, prefix="Bearer")
        elif method == AuthenticationMethod.API_KEY:
            api_key = authentication.api_key
            if api_key.destination == APIKeyDestination.QUERY_PARAMETERS:
                builder.set_api_key(api_key.destination, api_key.query_name, "", api_key.token)
            else:
                builder.set_api_key(
                    api_key.destination, api_key.header_name, api_key.prefix, api_key.token
                )
        elif method == AuthenticationMethod.OAUTH20:
            oauth20 = authentication.oauth20
            if oauth20.flow == OAuth20Flow.CLIENT_CREDENTIAL:
                builder.set_oauth20_client_credential(
                    oauth20.authentication_type,
                    oauth20.token_endpoint,
                    oauth20.client_id,
                    oauth20.client_secret,
                    oauth20.scopes,
                )
        else:
            builder.set_no_authentication()

    def _load_upload_files(self, request_config: RequestConfig) -> list[Attachment]:
        attachments: list[Attachment] = []
        for upload_file in request_config.upload_file_table:
            path = Path(upload_file.file_path)
            if not path.is_file():
                self._log.error("upload_file_not_found", file_path=upload_file.file_path)
                continue

            attachments.append(
                Attachment(
                    name=upload_file.name,
                    content=path.read_bytes(),
                    filename=path.name,
                    content_type=f"{upload_file.content_type}; charset={upload_file.encoding}",
                )
            )
        return attachments
