"""
Active Directory schema names.

Logical attribute names mapped to the physical LDAP attribute names the store
uses, and the ``objectClass`` values that identify each kind of entry.
"""


class AttributeNames:
    """Attributes every directory entry may carry."""

    CN = "cn"
    NAME = "name"
    DISTINGUISHED_NAME = "distinguishedName"
    OBJECT_CLASS = "objectClass"
    OBJECT_CATEGORY = "objectCategory"
    OBJECT_SID = "objectSid"
    OBJECT_GUID = "objectGUID"
    DESCRIPTION = "description"
    DISPLAY_NAME = "displayName"
    SAM_ACCOUNT_NAME = "sAMAccountName"
    MANAGED_BY = "managedBy"
    MEMBER_OF = "memberOf"
    WHEN_CREATED = "whenCreated"
    WHEN_CHANGED = "whenChanged"


class ComputerAttributeNames(AttributeNames):
    OPERATING_SYSTEM = "operatingSystem"
    OPERATING_SYSTEM_VERSION = "operatingSystemVersion"
    OPERATING_SYSTEM_SERVICE_PACK = "operatingSystemServicePack"
    DNS_HOST_NAME = "dNSHostName"
    #: Constructed attribute; only returned by base-scope searches.
    SITE_NAME = "msDS-SiteName"
    LAST_LOGON_TIMESTAMP = "lastLogonTimestamp"


class UserAttributeNames(AttributeNames):
    GIVEN_NAME = "givenName"
    SN = "sn"
    INITIALS = "initials"
    USER_PRINCIPAL_NAME = "userPrincipalName"
    MAIL = "mail"
    TELEPHONE_NUMBER = "telephoneNumber"
    TITLE = "title"
    DEPARTMENT = "department"
    COMPANY = "company"
    MANAGER = "manager"
    USER_ACCOUNT_CONTROL = "userAccountControl"
    LAST_LOGON_TIMESTAMP = "lastLogonTimestamp"
    PWD_LAST_SET = "pwdLastSet"
    UNICODE_PWD = "unicodePwd"


class GroupAttributeNames(AttributeNames):
    MEMBER = "member"
    GROUP_TYPE = "groupType"
    MAIL = "mail"


class OrganizationalUnitAttributeNames(AttributeNames):
    OU = "ou"
    STREET = "street"
    #: City
    L = "l"
    #: State or province
    ST = "st"
    #: Country or region, long form
    CO = "co"
    #: Country or region, two letter abbreviation
    C = "c"
    POSTAL_CODE = "postalCode"


class ObjectClasses:
    TOP = "top"
    COMPUTER = "computer"
    USER = "user"
    PERSON = "person"
    ORGANIZATIONAL_PERSON = "organizationalPerson"
    GROUP = "group"
    CONTACT = "contact"
    ORGANIZATIONAL_UNIT = "organizationalUnit"


#: ``userAccountControl`` flag for a disabled account.
ACCOUNTDISABLE = 0x0002
#: ``userAccountControl`` flag for a normal user account.
NORMAL_ACCOUNT = 0x0200
#: ``groupType`` flag that marks a security group.
GROUP_TYPE_SECURITY_ENABLED = 0x80000000
