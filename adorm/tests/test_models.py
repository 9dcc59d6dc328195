# type: ignore
"""
Tests for entity materialization: memoized fields, writes, reference
resolution and the entity metaclass.
"""

import datetime
import unittest
from unittest.mock import MagicMock, patch

import pytz
from django.core.exceptions import FieldDoesNotExist

from adorm.adapters import GroupType
from adorm.exceptions import NotFoundError, StoreIOError
from adorm.fields import CharField
from adorm.filters import IsObjectClass
from adorm.models import ADObject, ADObjectBase, EntityKind
from adorm.objects import Computer, Group, OrganizationalUnit, User
from adorm.tests.base import (
    ADMINS_DN,
    ALICE_DN,
    BASEDN,
    BOB_DN,
    CORP_DN,
    PC01_DN,
    DirectoryTestCase,
)


class TestEntityClasses(unittest.TestCase):
    def test_direct_construction_is_refused(self):
        with self.assertRaises(TypeError):
            ADObject()
        with self.assertRaises(TypeError):
            Computer(cn="PC01")

    def test_registry(self):
        self.assertIs(ADObjectBase.registry[EntityKind.COMPUTER], Computer)
        self.assertIs(ADObjectBase.registry[EntityKind.USER], User)
        self.assertIs(ADObjectBase.registry[EntityKind.GROUP], Group)
        self.assertIs(ADObjectBase.registry[EntityKind.ORGANIZATIONAL_UNIT], OrganizationalUnit)

    def test_most_specific_class_wins(self):
        self.assertIs(
            ADObject.for_object_classes(["top", "person", "user", "computer"]), Computer
        )
        self.assertIs(ADObject.for_object_classes(["top", "person", "user"]), User)
        self.assertIs(ADObject.for_object_classes(["top", "container"]), ADObject)

    def test_fields_are_inherited(self):
        self.assertIn("cn", Computer._meta.fields_map)
        self.assertIn("operating_system_name", Computer._meta.fields_map)
        self.assertNotIn("operating_system_name", User._meta.fields_map)
        self.assertIn("operatingSystem", Computer._meta.attributes)

    def test_meta(self):
        self.assertEqual(OrganizationalUnit._meta.rdn_attribute, "ou")
        self.assertEqual(User._meta.rdn_attribute, "cn")
        self.assertEqual(
            Computer._meta.object_classes,
            ["top", "person", "organizationalPerson", "user", "computer"],
        )
        self.assertEqual(Group._meta.kind_filter, IsObjectClass("group"))
        self.assertIsNone(ADObject._meta.kind_filter)
        self.assertEqual(OrganizationalUnit._meta.verbose_name_plural, "organizational units")

    def test_meta_is_inherited(self):
        class Workstation(Computer):
            pass

        class Branch(OrganizationalUnit):
            class Meta:
                verbose_name = "branch"

        self.assertEqual(Workstation._meta.kind, EntityKind.COMPUTER)
        self.assertEqual(Workstation._meta.object_classes, Computer._meta.object_classes)
        self.assertEqual(str(Workstation._meta.kind_filter), "(objectClass=computer)")
        self.assertEqual(Workstation._meta.verbose_name, "workstation")
        self.assertEqual(Branch._meta.rdn_attribute, "ou")
        self.assertEqual(Branch._meta.verbose_name, "branch")
        self.assertIs(ADObjectBase.registry[EntityKind.COMPUTER], Computer)
        self.assertIs(ADObjectBase.registry[EntityKind.ORGANIZATIONAL_UNIT], OrganizationalUnit)

    def test_get_field(self):
        self.assertIsInstance(User._meta.get_field("mail"), CharField)
        with self.assertRaises(FieldDoesNotExist):
            User._meta.get_field("operating_system_name")

    def test_unknown_meta_option(self):
        with self.assertRaises(TypeError):

            class Printer(ADObject):
                class Meta:
                    object_class = "printQueue"
                    basedn = "dc=example,dc=com"

    def test_objects_is_reserved(self):
        with self.assertRaises(ValueError):

            class Printer(ADObject):
                objects = CharField("objects")

    def test_fields_take_no_form_metadata(self):
        field = CharField("location", editable=True)
        self.assertEqual(field.ldap_attribute, "location")
        self.assertTrue(field.editable)
        with self.assertRaises(TypeError):
            CharField("location", help_text="Where the computer lives")
        with self.assertRaises(TypeError):
            CharField("location", verbose_name="Location")

    def test_equality(self):
        connection = MagicMock()
        row = (PC01_DN, {"cn": [b"PC01"]})
        computer = Computer.from_db(connection, row)
        again = Computer.from_db(connection, (PC01_DN.upper(), {"cn": [b"PC01"]}))
        self.assertEqual(computer, again)
        self.assertEqual(hash(computer), hash(again))
        self.assertNotEqual(computer, User.from_db(connection, row))

    def test_repr(self):
        computer = Computer.from_db(MagicMock(), (PC01_DN, {}))
        self.assertEqual(repr(computer), f"<Computer: {PC01_DN}>")


class TestFieldHydration(DirectoryTestCase):
    def setUp(self):
        super().setUp()
        self.computer = Computer.objects.find_one_by_cn(self.connection, "PC01")

    def test_typed_values(self):
        computer = self.computer
        self.assertEqual(computer.dn, PC01_DN)
        self.assertEqual(computer.kind, EntityKind.COMPUTER)
        self.assertEqual(computer.operating_system_name, "Windows Server 2019")
        self.assertEqual(computer.operating_system_version, "10.0 (17763)")
        self.assertEqual(computer.dns_name, "pc01.example.com")
        self.assertEqual(computer.member_of, [ADMINS_DN])
        self.assertEqual(
            computer.last_logon, datetime.datetime(1970, 1, 1, tzinfo=pytz.UTC)
        )
        self.assertEqual(
            computer.when_created,
            datetime.datetime(2024, 1, 31, 23, 59, 59, tzinfo=pytz.UTC),
        )
        self.assertEqual(
            computer.object_class,
            ["top", "person", "organizationalPerson", "user", "computer"],
        )

    def test_absent_attributes(self):
        self.assertEqual(self.computer.operating_system_service_pack, "")
        self.assertEqual(self.computer.object_guid, "")
        self.assertEqual(self.computer.object_sid, "")
        self.assertIsNone(self.computer.when_changed)

    def test_adapter_runs_once(self):
        adapter = MagicMock(return_value="Windows Server 2022")
        computer = Computer.objects.find_one_by_cn(self.connection, "PC01")
        with patch.object(Computer.operating_system_name, "adapter", adapter):
            first = computer.operating_system_name
            second = computer.operating_system_name
        self.assertEqual(first, "Windows Server 2022")
        self.assertIs(first, second)
        adapter.assert_called_once_with([b"Windows Server 2019"])

    def test_memoized_value_ignores_store_changes(self):
        self.assertEqual(self.computer.dns_name, "pc01.example.com")
        self.connection.commit_attribute(PC01_DN, "dNSHostName", [b"renamed.example.com"])
        self.assertEqual(self.computer.dns_name, "pc01.example.com")

    def test_raw_row_is_read_only(self):
        with self.assertRaises(TypeError):
            self.computer.attributes["cn"] = [b"PC02"]

    def test_get_raw_is_case_insensitive(self):
        self.assertEqual(self.computer.get_raw("OPERATINGSYSTEM"), [b"Windows Server 2019"])
        self.assertIsNone(self.computer.get_raw("location"))

    def test_invalidate(self):
        self.assertEqual(self.computer.operating_system_name, "Windows Server 2019")
        adapter = MagicMock(return_value="recomputed")
        with patch.object(Computer.operating_system_name, "adapter", adapter):
            self.computer.invalidate("operating_system_name")
            self.assertEqual(self.computer.operating_system_name, "recomputed")
            self.computer.invalidate()
            self.assertEqual(self.computer.operating_system_name, "recomputed")
        self.assertEqual(adapter.call_count, 2)

    def test_refresh(self):
        self.assertEqual(self.computer.dns_name, "pc01.example.com")
        self.connection.commit_attribute(PC01_DN, "dNSHostName", [b"renamed.example.com"])
        self.computer.refresh()
        self.assertEqual(self.computer.dns_name, "renamed.example.com")

    def test_refresh_deleted_entry(self):
        self.delete_object(PC01_DN)
        with self.assertRaises(NotFoundError):
            self.computer.refresh()


class TestWrites(DirectoryTestCase):
    def setUp(self):
        super().setUp()
        self.computer = Computer.objects.find_one_by_cn(self.connection, "PC01")

    def reread(self):
        return Computer.objects.find_one_by_identity(self.connection, PC01_DN)

    def test_write_updates_cache_and_store(self):
        self.computer.description = "Build server"
        self.assertEqual(self.writes(), [(PC01_DN, "description", [b"Build server"])])
        self.assertEqual(self.computer.description, "Build server")
        self.assertEqual(self.reread().description, "Build server")

    def test_write_does_not_search(self):
        searches = self.search.call_count
        self.computer.description = "Build server"
        self.assertEqual(self.computer.description, "Build server")
        self.assertEqual(self.search.call_count, searches)

    def test_empty_value_removes_the_attribute(self):
        self.computer.description = "Build server"
        self.computer.description = ""
        self.assertEqual(self.writes()[-1], (PC01_DN, "description", []))
        self.assertEqual(self.computer.description, "")
        self.assertIsNone(self.reread().get_raw("description"))

    def test_failed_write_keeps_new_value(self):
        with (
            patch.object(
                self.connection,
                "commit_attribute",
                side_effect=StoreIOError("server unavailable"),
            ),
            self.assertRaises(StoreIOError),
        ):
            self.computer.description = "Build server"
        self.assertEqual(self.computer.description, "Build server")

    def test_write_to_deleted_entry(self):
        self.delete_object(PC01_DN)
        with self.assertRaises(NotFoundError):
            self.computer.description = "Build server"

    def test_read_only_fields(self):
        with self.assertRaises(AttributeError):
            self.computer.operating_system_name = "Windows 11"
        with self.assertRaises(AttributeError):
            self.computer.managed_by_object = None
        self.assertEqual(self.writes(), [])

    def test_member_of_is_read_only(self):
        with self.assertRaises(AttributeError):
            self.computer.member_of = []
        self.assertEqual(self.computer.member_of, [ADMINS_DN])
        self.assertEqual(self.writes(), [])

    def test_set_attribute_goes_through_field(self):
        self.computer.set_attribute("Description", "Build server")
        self.assertEqual(self.computer.description, "Build server")
        self.assertEqual(self.writes(), [(PC01_DN, "description", [b"Build server"])])

    def test_set_attribute_without_field(self):
        self.computer.set_attribute("location", "Lab 1")
        self.assertEqual(self.writes(), [(PC01_DN, "location", [b"Lab 1"])])

    def test_multi_valued_write(self):
        group = Group.objects.find_one_by_cn(self.connection, "Admins")
        group.members = [ALICE_DN, BOB_DN]
        self.assertEqual(group.members, [ALICE_DN, BOB_DN])
        self.assertEqual(
            self.writes(),
            [(ADMINS_DN, "member", [ALICE_DN.encode(), BOB_DN.encode()])],
        )


class TestReferences(DirectoryTestCase):
    def setUp(self):
        super().setUp()
        self.computer = Computer.objects.find_one_by_cn(self.connection, "PC01")

    def test_resolves_to_the_right_kind(self):
        owner = self.computer.managed_by_object
        self.assertIsInstance(owner, User)
        self.assertEqual(owner.dn, ALICE_DN)
        self.assertEqual(owner.given_name, "Alice")

    def test_resolved_once(self):
        first = self.computer.managed_by_object
        searches = self.search.call_count
        self.assertIs(self.computer.managed_by_object, first)
        self.assertEqual(self.search.call_count, searches)

    def test_user_manager(self):
        alice = User.objects.find_one_by_cn(self.connection, "Alice Smith")
        self.assertEqual(alice.manager_object.dn, BOB_DN)

    def test_absent_reference(self):
        bob = User.objects.find_one_by_cn(self.connection, "Bob Jones")
        searches = self.search.call_count
        self.assertIsNone(bob.manager_object)
        self.assertEqual(self.search.call_count, searches)

    def test_dangling_reference_is_cached(self):
        self.delete_object(ALICE_DN)
        self.assertIsNone(self.computer.managed_by_object)
        searches = self.search.call_count
        self.assertIsNone(self.computer.managed_by_object)
        self.assertEqual(self.search.call_count, searches)

    def test_writing_the_source_forgets_the_target(self):
        self.assertEqual(self.computer.managed_by_object.dn, ALICE_DN)
        self.computer.managed_by = BOB_DN
        self.assertEqual(self.computer.managed_by_object.dn, BOB_DN)

    def test_generic_lookup_materializes_kinds(self):
        self.assertIsInstance(ADObject.objects.find_one_by_identity(self.connection, PC01_DN), Computer)
        self.assertIsInstance(ADObject.objects.find_one_by_identity(self.connection, ADMINS_DN), Group)
        self.assertIsInstance(
            ADObject.objects.find_one_by_identity(self.connection, CORP_DN), OrganizationalUnit
        )
        domain = ADObject.objects.find_one_by_identity(self.connection, BASEDN)
        self.assertIs(type(domain), ADObject)


class TestKindExtras(DirectoryTestCase):
    def test_user_enable_disable(self):
        alice = User.objects.find_one_by_cn(self.connection, "Alice Smith")
        bob = User.objects.find_one_by_cn(self.connection, "Bob Jones")
        self.assertTrue(alice.is_enabled)
        self.assertFalse(bob.is_enabled)
        alice.disable()
        self.assertFalse(alice.is_enabled)
        self.assertEqual(self.writes()[-1], (ALICE_DN, "userAccountControl", [b"514"]))
        bob.enable()
        self.assertTrue(bob.is_enabled)
        self.assertEqual(self.writes()[-1], (BOB_DN, "userAccountControl", [b"512"]))

    def test_set_password(self):
        alice = User.objects.find_one_by_cn(self.connection, "Alice Smith")
        alice.set_password("S3cret!")
        self.assertEqual(
            self.writes(),
            [(ALICE_DN, "unicodePwd", ['"S3cret!"'.encode("utf-16-le")])],
        )

    def test_group_type(self):
        group = Group.objects.find_one_by_cn(self.connection, "Admins")
        self.assertEqual(group.group_type, GroupType.SECURITY)
        self.assertTrue(group.is_security_group)
        self.assertEqual(group.members, [ALICE_DN, PC01_DN])
        self.assertEqual(group.managed_by_object.dn, BOB_DN)
