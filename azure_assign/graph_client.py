"""
Directory client interface and Azure AD Graph implementation.

This module defines the abstract interface the reconciliation pipeline uses to
read and change app role assignments, along with a REST client for the Azure
AD Graph API that authenticates with the OAuth2 client credentials flow.
"""

import json
import ssl
import time
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional, Union
from urllib.parse import urlparse, urlencode, quote
from http.client import HTTPSConnection, HTTPConnection, HTTPException

from azure_assign.models import Group, ServicePrincipal, AppRoleAssignmentRecord
from azure_assign.retry import (
    retry_call, is_retryable_error, create_retry_callback, MaxRetriesExceeded
)

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_URL = 'https://graph.windows.net'
DEFAULT_LOGIN_URL = 'https://login.microsoftonline.com'
DEFAULT_API_VERSION = '1.6'


class DirectoryRequestError(Exception):
    """Raised when a directory API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class DirectoryAuthenticationError(DirectoryRequestError):
    """Raised when authentication to the directory fails."""
    pass


class DirectoryClient(ABC):
    """
    Operations the pipeline needs from a directory service.

    Implementations raise DirectoryRequestError on any failure.
    """

    @abstractmethod
    def list_service_principals(self) -> List[ServicePrincipal]:
        pass

    @abstractmethod
    def get_group(self, group_id: str) -> Group:
        pass

    @abstractmethod
    def list_assigned_roles(self, resource_id: str) -> List[AppRoleAssignmentRecord]:
        """
        List role assignments granted on a service principal.

        Args:
            resource_id: Object id of the service principal

        Returns:
            All assignment records, unfiltered
        """
        pass

    @abstractmethod
    def create_assignment(self, resource_id: str, group_id: str, role_id: str) -> None:
        pass

    @abstractmethod
    def delete_assignment(self, group_id: str, assignment_id: str) -> None:
        pass


class GraphClient(DirectoryClient):
    """
    Azure AD Graph REST client.

    A new HTTP connection is opened for every request so a single client can
    be shared by the applier's worker threads.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize Graph client.

        Args:
            config: Full application configuration (tenant, credentials,
                graph and error_handling sections)
        """
        self.tenant = config['tenant']
        credentials = config['credentials']
        self.client_id = credentials['client_id']
        self.client_secret = credentials['client_secret']

        graph_config = config.get('graph', {})
        self.base_url = graph_config.get('base_url', DEFAULT_GRAPH_URL).rstrip('/')
        self.login_url = graph_config.get('login_url', DEFAULT_LOGIN_URL).rstrip('/')
        self.api_version = str(graph_config.get('api_version', DEFAULT_API_VERSION))
        self.timeout = graph_config.get('timeout_seconds', 30)
        self.verify_ssl = graph_config.get('verify_ssl', True)

        self.error_config = config.get('error_handling', {})

        self.parsed_url = urlparse(self.base_url)
        self.host = self.parsed_url.netloc
        self.base_path = f"{self.parsed_url.path.rstrip('/')}/{quote(self.tenant)}"

        self.ssl_context = self._create_ssl_context()

        # Token state
        self._access_token = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def _create_ssl_context(self) -> Optional[ssl.SSLContext]:
        if not self.verify_ssl:
            logger.warning("SSL verification disabled for directory requests")
            return ssl._create_unverified_context()
        return ssl.create_default_context()

    def _open_connection(self, url) -> Union[HTTPSConnection, HTTPConnection]:
        if url.scheme == 'https':
            return HTTPSConnection(url.netloc, context=self.ssl_context, timeout=self.timeout)
        return HTTPConnection(url.netloc, timeout=self.timeout)

    # Authentication

    def _fetch_token(self) -> None:
        """Obtain an access token using the client credentials flow."""
        token_url = urlparse(f"{self.login_url}/{quote(self.tenant)}/oauth2/token")
        body = urlencode({
            'grant_type': 'client_credentials',
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'resource': self.base_url,
        })
        headers = {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Accept': 'application/json'
        }

        logger.debug(f"Requesting access token for tenant {self.tenant}")
        conn = self._open_connection(token_url)
        try:
            conn.request('POST', token_url.path, body, headers)
            response = conn.getresponse()
            raw_data = response.read()
        except (OSError, HTTPException) as e:
            raise DirectoryRequestError(f"Token request failed: {e}")
        finally:
            conn.close()

        if response.status != 200:
            raise DirectoryAuthenticationError(
                f"Token request failed: {response.status} {response.reason}",
                status_code=response.status
            )

        try:
            token_response = json.loads(raw_data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DirectoryAuthenticationError(f"Invalid JSON in token response: {e}")

        access_token = token_response.get('access_token')
        if not access_token:
            raise DirectoryAuthenticationError("Token response missing access_token")

        self._access_token = access_token
        expires_in = int(token_response.get('expires_in', 3600))
        self._token_expires_at = time.time() + expires_in - 60  # 60 second buffer
        logger.info(f"Obtained access token for tenant {self.tenant}")

    def _get_token(self, force_refresh: bool = False) -> str:
        with self._token_lock:
            if force_refresh or not self._access_token or time.time() >= self._token_expires_at:
                self._fetch_token()
            return self._access_token

    # Requests

    def request(self, method: str, path: str, body: Optional[Dict] = None) -> Any:
        """
        Make an authenticated request to the Graph API.

        Args:
            method: HTTP method (GET, POST, DELETE)
            path: Resource path relative to the tenant, e.g. 'groups/{id}'
            body: JSON request body

        Returns:
            Parsed JSON response, or None for empty responses

        Raises:
            DirectoryRequestError: If the request fails
        """
        full_path = f"{self.base_path}/{path.lstrip('/')}?{urlencode({'api-version': self.api_version})}"
        request_body = json.dumps(body) if body is not None else None

        # Refresh the token once on 401
        max_auth_retries = 1
        for auth_attempt in range(max_auth_retries + 1):
            headers = {
                'Authorization': f"Bearer {self._get_token(force_refresh=auth_attempt > 0)}",
                'Accept': 'application/json'
            }
            if request_body is not None:
                headers['Content-Type'] = 'application/json'

            conn = self._open_connection(self.parsed_url)
            try:
                logger.debug(f"Making {method} request to {self.host}{full_path}")
                conn.request(method, full_path, request_body, headers)
                response = conn.getresponse()
                raw_data = response.read()
            except (OSError, HTTPException) as e:
                # No status code: treated as transient by read retries
                raise DirectoryRequestError(f"Connection error to {self.host}: {e}")
            finally:
                conn.close()

            logger.debug(f"Response status: {response.status} {response.reason}")

            if response.status == 401:
                if auth_attempt < max_auth_retries:
                    logger.info("401 received, refreshing access token")
                    continue
                raise DirectoryAuthenticationError(
                    f"Authentication failed for {method} {path}", status_code=401
                )

            if response.status >= 400:
                raise DirectoryRequestError(
                    f"{method} {path} failed: HTTP {response.status} {response.reason}"
                    f"{self._error_detail(raw_data.decode('utf-8', errors='replace'))}",
                    status_code=response.status
                )

            if not raw_data:
                return None
            try:
                return json.loads(raw_data.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise DirectoryRequestError(
                    f"Invalid JSON response for {method} {path}: {e}", status_code=response.status
                )

        raise DirectoryRequestError(f"Request failed after {max_auth_retries + 1} attempts")

    @staticmethod
    def _error_detail(response_data: str) -> str:
        """Extract the Graph error message from a response body, if any."""
        try:
            error = json.loads(response_data).get('odata.error', {})
            message = error.get('message', {})
            value = message.get('value') if isinstance(message, dict) else message
            return f" - {value}" if value else ''
        except (ValueError, AttributeError):
            return ''

    def _get(self, path: str) -> Any:
        """GET with retry on transient failures."""
        max_retries = self.error_config.get('max_retries', 3)
        try:
            return retry_call(
                self.request,
                args=('GET', path),
                max_attempts=max_retries + 1,
                delay=self.error_config.get('retry_wait_seconds', 5),
                backoff=self.error_config.get('retry_backoff', 1.0),
                exceptions=(DirectoryRequestError,),
                retry_if=is_transient_error,
                on_retry=create_retry_callback(f"GET {path}")
            )
        except MaxRetriesExceeded as e:
            raise e.last_exception

    # DirectoryClient operations

    def list_service_principals(self) -> List[ServicePrincipal]:
        response = self._get('servicePrincipals')
        principals = [ServicePrincipal.from_dict(sp) for sp in (response or {}).get('value', [])]
        logger.info(f"Retrieved {len(principals)} service principals")
        return principals

    def get_group(self, group_id: str) -> Group:
        response = self._get(f"groups/{quote(group_id)}") or {}
        return Group(
            group_id=response.get('objectId', group_id),
            group_display_name=response.get('displayName')
        )

    def list_assigned_roles(self, resource_id: str) -> List[AppRoleAssignmentRecord]:
        response = self._get(f"servicePrincipals/{quote(resource_id)}/appRoleAssignedTo")
        records = [AppRoleAssignmentRecord.from_dict(item) for item in (response or {}).get('value', [])]
        logger.debug(f"Retrieved {len(records)} assignment records for {resource_id}")
        return records

    def create_assignment(self, resource_id: str, group_id: str, role_id: str) -> None:
        body = {
            'resourceId': resource_id,
            'principalId': group_id,
            'principalType': 'Group',
            'id': role_id
        }
        self.request('POST', f"groups/{quote(group_id)}/appRoleAssignments", body)
        logger.info(f"Assigned role {role_id} to group {group_id} on {resource_id}")

    def delete_assignment(self, group_id: str, assignment_id: str) -> None:
        self.request('DELETE', f"groups/{quote(group_id)}/appRoleAssignments/{quote(assignment_id)}")
        logger.info(f"Removed assignment {assignment_id} from group {group_id}")


def is_transient_error(error: DirectoryRequestError) -> bool:
    """True for transport failures, 429 and 5xx responses."""
    if isinstance(error, DirectoryAuthenticationError):
        return False
    # status_code is None for transport failures
    return error.status_code is None or is_retryable_error(error)
