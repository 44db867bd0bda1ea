import os
import ssl


def httpx_verify_option(verify_ssl: bool = True) -> ssl.SSLContext | str | bool:
    """Return the ``verify`` argument for httpx clients.

    ARTIFACTORY_OPS_CA_BUNDLE points at a custom CA bundle and
    ARTIFACTORY_OPS_SSL_VERIFY=false disables verification entirely.
    """
    if not verify_ssl:
        return False
    if os.environ.get('ARTIFACTORY_OPS_SSL_VERIFY', '').lower() in ('0', 'false', 'no'):
        return False
    ca_bundle = os.environ.get('ARTIFACTORY_OPS_CA_BUNDLE')
    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)
    return True
