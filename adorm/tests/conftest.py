import django
from django.conf import settings

# Configure Django settings before anything reads settings.LDAP_SERVERS
if not settings.configured:
    settings.configure(
        LDAP_SERVERS={
            "default": {
                "basedn": "dc=example,dc=com",
                "read": {
                    "url": "ldap://localhost:389",
                    "user": "cn=admin,dc=example,dc=com",
                    "password": "admin",
                    "use_starttls": False,
                    "tls_verify": "never",
                    "timeout": 15.0,
                    "follow_referrals": False,
                },
                "write": {
                    "url": "ldap://localhost:389",
                    "user": "cn=admin,dc=example,dc=com",
                    "password": "admin",
                    "use_starttls": False,
                    "tls_verify": "never",
                    "timeout": 15.0,
                    "follow_referrals": False,
                },
            }
        }
    )
    django.setup()
