"""
Active Directory entity kinds.

Each class here is one entity kind: it declares its fields and, in its
``Meta``, the structural filter that selects it and the attribute used in its
relative distinguished name.  Finders live on the ``objects`` manager::

    >>> computer = Computer.objects.find_one_by_cn(connection, "PC01")
    >>> computer.operating_system_name
    'Windows Server 2019'
"""

from typing import cast

from .adapters import GroupType
from .attributes import (
    ACCOUNTDISABLE,
    NORMAL_ACCOUNT,
    ComputerAttributeNames,
    GroupAttributeNames,
    ObjectClasses,
    OrganizationalUnitAttributeNames,
    UserAttributeNames,
)
from .fields import (
    ActiveDirectoryTimestampField,
    CharField,
    CharListField,
    GroupTypeField,
    IntegerField,
    RelatedObjectField,
    SidField,
)
from .filters import is_computer, is_group, is_ou, is_user
from .models import ADObject, EntityKind


class Computer(ADObject):
    """
    A computer account.
    """

    object_sid = SidField(ComputerAttributeNames.OBJECT_SID)
    sam_account_name = CharField(ComputerAttributeNames.SAM_ACCOUNT_NAME)
    operating_system_name = CharField(ComputerAttributeNames.OPERATING_SYSTEM)
    operating_system_version = CharField(ComputerAttributeNames.OPERATING_SYSTEM_VERSION)
    operating_system_service_pack = CharField(
        ComputerAttributeNames.OPERATING_SYSTEM_SERVICE_PACK
    )
    dns_name = CharField(ComputerAttributeNames.DNS_HOST_NAME)
    site_name = CharField(ComputerAttributeNames.SITE_NAME)
    last_logon = ActiveDirectoryTimestampField(
        ComputerAttributeNames.LAST_LOGON_TIMESTAMP
    )
    #: Read-only: AD maintains memberOf as a back-link of Group.members and
    #: refuses writes to it.
    member_of = CharListField(ComputerAttributeNames.MEMBER_OF)
    managed_by = CharField(ComputerAttributeNames.MANAGED_BY, editable=True)
    managed_by_object = RelatedObjectField("managed_by")

    class Meta:
        kind = EntityKind.COMPUTER
        object_class = ObjectClasses.COMPUTER
        extra_object_classes = [  # noqa: RUF012
            ObjectClasses.TOP,
            ObjectClasses.PERSON,
            ObjectClasses.ORGANIZATIONAL_PERSON,
            ObjectClasses.USER,
        ]
        filter = is_computer


class User(ADObject):
    """
    A user account.  Computer accounts are not users, even though the store
    gives them the ``user`` object class too.
    """

    object_sid = SidField(UserAttributeNames.OBJECT_SID)
    sam_account_name = CharField(
        UserAttributeNames.SAM_ACCOUNT_NAME, editable=True
    )
    user_principal_name = CharField(
        UserAttributeNames.USER_PRINCIPAL_NAME, editable=True
    )
    given_name = CharField(UserAttributeNames.GIVEN_NAME, editable=True)
    surname = CharField(UserAttributeNames.SN, editable=True)
    initials = CharField(UserAttributeNames.INITIALS, editable=True)
    mail = CharField(UserAttributeNames.MAIL, editable=True)
    telephone_number = CharField(UserAttributeNames.TELEPHONE_NUMBER, editable=True)
    title = CharField(UserAttributeNames.TITLE, editable=True)
    department = CharField(UserAttributeNames.DEPARTMENT, editable=True)
    company = CharField(UserAttributeNames.COMPANY, editable=True)
    member_of = CharListField(UserAttributeNames.MEMBER_OF)
    manager = CharField(UserAttributeNames.MANAGER, editable=True)
    manager_object = RelatedObjectField("manager")
    user_account_control = IntegerField(
        UserAttributeNames.USER_ACCOUNT_CONTROL, editable=True
    )
    last_logon = ActiveDirectoryTimestampField(UserAttributeNames.LAST_LOGON_TIMESTAMP)
    password_last_set = ActiveDirectoryTimestampField(UserAttributeNames.PWD_LAST_SET)

    class Meta:
        kind = EntityKind.USER
        object_class = ObjectClasses.USER
        extra_object_classes = [  # noqa: RUF012
            ObjectClasses.TOP,
            ObjectClasses.PERSON,
            ObjectClasses.ORGANIZATIONAL_PERSON,
        ]
        filter = is_user

    @property
    def is_enabled(self) -> bool:
        """
        ``False`` if the account has the ``ACCOUNTDISABLE`` flag set.
        """
        return not (self.user_account_control or 0) & ACCOUNTDISABLE

    def enable(self) -> None:
        """
        Clear the ``ACCOUNTDISABLE`` flag.
        """
        flags = self.user_account_control or NORMAL_ACCOUNT
        self.user_account_control = flags & ~ACCOUNTDISABLE

    def disable(self) -> None:
        """
        Set the ``ACCOUNTDISABLE`` flag.
        """
        flags = self.user_account_control or NORMAL_ACCOUNT
        self.user_account_control = flags | ACCOUNTDISABLE

    def set_password(self, password: str) -> None:
        """
        Set the user's password.

        Active Directory wants the new password in ``unicodePwd`` as the
        UTF-16-LE encoding of the password wrapped in double quotes, and only
        accepts it over an encrypted connection.

        Args:
            password: the new password, in plain text.

        """
        value = f'"{password}"'.encode("utf-16-le")
        self.set_attribute(UserAttributeNames.UNICODE_PWD, [value])


class Group(ADObject):
    """
    A security or distribution group.
    """

    object_sid = SidField(GroupAttributeNames.OBJECT_SID)
    sam_account_name = CharField(
        GroupAttributeNames.SAM_ACCOUNT_NAME, editable=True
    )
    mail = CharField(GroupAttributeNames.MAIL, editable=True)
    group_type = GroupTypeField(GroupAttributeNames.GROUP_TYPE)
    members = CharListField(GroupAttributeNames.MEMBER, editable=True)
    member_of = CharListField(GroupAttributeNames.MEMBER_OF)
    managed_by = CharField(GroupAttributeNames.MANAGED_BY, editable=True)
    managed_by_object = RelatedObjectField("managed_by")

    class Meta:
        kind = EntityKind.GROUP
        object_class = ObjectClasses.GROUP
        filter = is_group

    @property
    def is_security_group(self) -> bool:
        return self.group_type == GroupType.SECURITY


class OrganizationalUnit(ADObject):
    """
    An organizational unit: a container for other entries.  New groups, users
    and child units are created through it.
    """

    ou = CharField(OrganizationalUnitAttributeNames.OU)
    street = CharField(OrganizationalUnitAttributeNames.STREET, editable=True)
    city = CharField(OrganizationalUnitAttributeNames.L, editable=True)
    state_or_province = CharField(OrganizationalUnitAttributeNames.ST, editable=True)
    country = CharField(OrganizationalUnitAttributeNames.CO, editable=True)
    country_code = CharField(OrganizationalUnitAttributeNames.C, editable=True)
    postal_code = CharField(OrganizationalUnitAttributeNames.POSTAL_CODE, editable=True)
    managed_by = CharField(OrganizationalUnitAttributeNames.MANAGED_BY, editable=True)
    managed_by_object = RelatedObjectField("managed_by")

    class Meta:
        kind = EntityKind.ORGANIZATIONAL_UNIT
        object_class = ObjectClasses.ORGANIZATIONAL_UNIT
        rdn_attribute = OrganizationalUnitAttributeNames.OU
        filter = is_ou
        verbose_name = "organizational unit"

    def add_organizational_unit(self, name: str) -> "OrganizationalUnit":
        """
        Create an organizational unit directly under this one.

        Args:
            name: the ``ou`` of the new unit.

        Returns:
            The new organizational unit.

        """
        return cast(
            "OrganizationalUnit",
            OrganizationalUnit.objects.create(self.connection, self.dn, name),
        )

    def add_group(self, name: str) -> Group:
        """
        Create a group directly under this organizational unit.

        Args:
            name: the ``cn`` of the new group.

        Returns:
            The new group.

        """
        return cast("Group", Group.objects.create(self.connection, self.dn, name))

    def add_user(self, name: str) -> User:
        """
        Create a user directly under this organizational unit.  The account is
        created disabled and without a password; see :py:meth:`User.set_password`
        and :py:meth:`User.enable`.

        Args:
            name: the ``cn`` of the new user.

        Returns:
            The new user.

        """
        return cast("User", User.objects.create(self.connection, self.dn, name))
