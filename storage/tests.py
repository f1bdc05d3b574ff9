from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Permission
from django.db import transaction
from django.test import TestCase
from django.urls import reverse

from core.errors import InvalidLocation, LocationNotFound

from .models import StorageLocation
from .services import deactivate_location, get_location, list_locations, lock_location, require_active_location


class StorageRegistryTests(TestCase):
    def setUp(self):
        self.cold = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('200'))
        self.freezer = StorageLocation.objects.create(
            name='Freezer 1', location_type='freezer', capacity_kg=Decimal('50'), status=StorageLocation.STATUS_INACTIVE
        )

    def test_get_location_returns_row(self):
        self.assertEqual(get_location(self.cold.pk), self.cold)

    def test_get_unknown_location_raises(self):
        with self.assertRaises(LocationNotFound) as ctx:
            get_location(999999)
        self.assertEqual(ctx.exception.code, 'location_not_found')
        with self.assertRaises(LocationNotFound):
            get_location('not-an-id')

    def test_lock_location(self):
        with transaction.atomic():
            self.assertEqual(lock_location(self.cold.pk), self.cold)
            with self.assertRaises(LocationNotFound):
                lock_location(999999)

    def test_list_locations_filters_active(self):
        self.assertEqual(list_locations(), [self.cold, self.freezer])
        self.assertEqual(list_locations(active_only=True), [self.cold])

    def test_require_active_location_rejects_inactive(self):
        with self.assertRaises(InvalidLocation) as ctx:
            require_active_location(self.freezer.pk)
        self.assertEqual(ctx.exception.code, 'invalid_location')
        self.assertEqual(require_active_location(self.cold.pk), self.cold)

    def test_deactivate_location(self):
        deactivate_location(self.cold.pk)
        self.cold.refresh_from_db()
        self.assertFalse(self.cold.is_active)


class StorageViewTests(TestCase):
    def setUp(self):
        self.location = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('200'))
        self.user = get_user_model().objects.create_user(username='store', password='pass')
        self.user.user_permissions.set(Permission.objects.filter(codename='view_storagelocation'))

    def test_requires_login(self):
        response = self.client.get(reverse('storage:location_list'))
        self.assertEqual(response.status_code, 302)

    def test_requires_permission(self):
        other = get_user_model().objects.create_user(username='nobody', password='pass')
        self.client.force_login(other)
        response = self.client.get(reverse('storage:location_list'))
        self.assertEqual(response.status_code, 403)

    def test_list_and_detail(self):
        self.client.force_login(self.user)
        response = self.client.get(reverse('storage:location_list'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['name'] for row in response.json()['locations']], ['Cold A'])

        response = self.client.get(reverse('storage:location_detail', args=[self.location.pk]))
        self.assertEqual(response.json()['capacity_kg'], '200.000')

    def test_detail_unknown_location_is_404(self):
        self.client.force_login(self.user)
        response = self.client.get(reverse('storage:location_detail', args=[424242]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'location_not_found')
