import datetime
import decimal

import pytz
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase

import sfsync
from sfsync import signals
from sfsync.collection import Collection
from sfsync.models import Model
from sfsync.rest.exceptions import DataError, InterfaceError
from sfsync.rest.mocksf import MockJsonRequest, MockTestCase

SF_ID = '006000000000001AAA'
API = 'mock:///services/data/v%s' % sfsync.API_VERSION
ERROR_RESPONSE = ('[{"message": "Amount: value not of required type", '
                  '"errorCode": "FIELD_CUSTOM_VALIDATION_EXCEPTION", "fields": ["Amount"]}]')


class Opportunity(Model):
    sobject_type = 'Opportunity'
    fields = ['Name', 'Amount', 'StageName']


class DirtyTrackingTest(SimpleTestCase):
    """Tracking of mutations without any request"""

    def test_new_record_is_not_tracked(self):
        obj = Opportunity({'Name': 'Acme'})
        obj.set_field('Amount', 100)
        obj.set_fields({'StageName': 'Open', 'Name': 'Acme 2'})
        self.assertTrue(obj.is_new)
        self.assertEqual(obj.pending_changes, frozenset())

    def test_existing_record_is_tracked(self):
        obj = Opportunity({'Id': SF_ID, 'Name': 'Acme'})
        self.assertFalse(obj.is_new)
        self.assertEqual(obj.pending_changes, frozenset())
        obj.set_field('Name', 'Acme')
        obj.set_fields({'Amount': 100, 'Id': SF_ID})
        self.assertEqual(obj.pending_changes, {'Name', 'Amount'})

    def test_untracked_mutation(self):
        obj = Opportunity({'Id': SF_ID})
        obj.set_field('Name', 'Acme', track=False)
        self.assertEqual(obj.pending_changes, frozenset())
        self.assertEqual(obj['Name'], 'Acme')

    def test_record_changed_signal(self):
        received = []

        def receiver(sender, instance, changes, tracked, **kwargs):
            received.append((sender, changes, tracked))
        signals.record_changed.connect(receiver)
        try:
            obj = Opportunity({'Id': SF_ID, 'Name': 'Acme'})
            obj.set_field('Name', 'Acme')  # not a change
            obj.set_field('Amount', 5)
        finally:
            signals.record_changed.disconnect(receiver)
        self.assertEqual(received, [(Opportunity, {'Id': SF_ID, 'Name': 'Acme'}, False),
                                    (Opportunity, {'Amount': 5}, True)])

    def test_parse(self):
        obj = Model()
        attrs = obj.parse({'attributes': {'type': 'Account', 'url': '/services/data/v59.0/sobjects/Account/001'},
                           'id': '001000000000001AAA', 'success': True, 'errors': [],
                           'CreatedDate': '2024-01-02T03:04:05.000+0000'})
        self.assertEqual(attrs, {'Id': '001000000000001AAA',
                                 'CreatedDate': datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=pytz.utc)})
        self.assertEqual(obj.sobject_type, 'Account')

    def test_missing_connection(self):
        obj = Opportunity({'Name': 'Acme'})
        self.assertRaises(ImproperlyConfigured, obj.save)

    def test_missing_sobject_type(self):
        obj = Model({'Id': SF_ID}, connection=object())
        self.assertRaisesRegex(ImproperlyConfigured, 'sobject_type', obj.save)

    def test_fetch_new_record(self):
        self.assertRaises(InterfaceError, Opportunity().fetch)


class SaveTest(MockTestCase):

    def existing(self, **attrs):
        values = {'Id': SF_ID, 'Name': 'Acme', 'Amount': 100, 'StageName': 'Open'}
        values.update(attrs)
        return Opportunity(values, connection=self.sf_connection)

    def test_create(self):
        self.mock_add_expected(MockJsonRequest(
            'POST', API + '/sobjects/Opportunity',
            req='{"Name": "Acme", "Amount": 12.5, "CloseDate": "2024-03-31"}',
            resp='{"id": "%s", "success": true, "errors": []}' % SF_ID,
            status_code=201))
        obj = Opportunity({'Name': 'Acme'}, connection=self.sf_connection)
        obj.set_field('Amount', decimal.Decimal('12.5'))
        obj.set_field('CloseDate', datetime.date(2024, 3, 31))
        resp = obj.save()
        self.assertEqual(resp['id'], SF_ID)
        self.assertEqual(obj.id, SF_ID)
        self.assertFalse(obj.is_new)
        self.assertEqual(obj.attributes, {'Id': SF_ID, 'Name': 'Acme', 'Amount': decimal.Decimal('12.5'),
                                          'CloseDate': datetime.date(2024, 3, 31)})
        self.assertEqual(obj.pending_changes, frozenset())

    def test_partial_update(self):
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"Name": "Acme", "Amount": 100}', status_code=204))
        obj = self.existing()
        obj.tracker.record(['Name', 'Amount'])
        results = []
        obj.save(success=lambda model, resp: results.append((model, resp)))
        self.assertEqual(results, [(obj, None)])
        self.assertEqual(obj.pending_changes, frozenset())

    def test_distinct_mutations_in_payload(self):
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"Name": "Acme 3", "StageName": "Closed Won"}', status_code=204))
        obj = self.existing()
        obj.set_field('Name', 'Acme 2')
        obj.set_field('StageName', 'Closed Won')
        obj.set_field('Name', 'Acme 3')
        obj.set_field('Id', SF_ID)
        obj.save()
        self.assertEqual(obj.pending_changes, frozenset())

    def test_save_with_attributes(self):
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"StageName": "Closed Lost"}', status_code=204))
        obj = self.existing()
        obj.save({'StageName': 'Closed Lost'})
        self.assertEqual(obj['StageName'], 'Closed Lost')

    def test_empty_update_is_sent(self):
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID, req='{}', status_code=204))
        self.existing().save()

    def test_failed_update_restores_changes(self):
        patch_request = dict(method='PATCH', url=API + '/sobjects/Opportunity/' + SF_ID,
                             req='{"Amount": "many"}')
        self.mock_add_expected([
            MockJsonRequest(resp=ERROR_RESPONSE, status_code=400, **patch_request),
            MockJsonRequest(status_code=204, **patch_request),
        ])
        obj = self.existing()
        obj.set_field('Amount', 'many')
        errors = []
        ret = obj.save(error=lambda model, exc: errors.append((model, exc)))
        self.assertIsNone(ret)
        self.assertEqual(len(errors), 1)
        self.assertIs(errors[0][0], obj)
        self.assertIsInstance(errors[0][1], DataError)
        self.assertEqual(obj.pending_changes, {'Amount'})
        # the retry sends the same payload
        obj.save()
        self.assertEqual(obj.pending_changes, frozenset())

    def test_failed_update_without_callback_raises(self):
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"Amount": "many"}', resp=ERROR_RESPONSE, status_code=400))
        obj = self.existing()
        obj.set_field('Amount', 'many')
        with self.assertRaisesRegex(DataError, '^FIELD_CUSTOM_VALIDATION_EXCEPTION'):
            obj.save()
        self.assertEqual(obj.pending_changes, {'Amount'})

    def test_mutation_during_failed_update(self):
        obj = self.existing()

        def mutate_in_flight():
            obj.set_field('StageName', 'Closed Won')
            obj.set_field('Name', 'Acme 2')
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"Name": "Acme", "Amount": 200}', resp=ERROR_RESPONSE, status_code=400,
            side_effect=mutate_in_flight))
        obj.set_fields({'Name': 'Acme', 'Amount': 200})
        errors = []
        obj.save(error=lambda model, exc: errors.append(exc))
        self.assertEqual(len(errors), 1)
        self.assertEqual(obj.pending_changes, {'Name', 'Amount', 'StageName'})

    def test_mutation_during_successful_update(self):
        obj = self.existing()
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"Amount": 200}', status_code=204,
            side_effect=lambda: obj.set_field('StageName', 'Closed Won')))
        obj.set_field('Amount', 200)
        obj.save()
        self.assertEqual(obj.pending_changes, {'StageName'})

    def test_save_after_name_is_recorded(self):
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"Name": "New"}', status_code=204))
        obj = self.existing(Name='Old')
        record = obj.tracker.record

        def record_then_save(names):
            record(names)
            obj.save()
        obj.tracker.record = record_then_save
        obj.set_field('Name', 'New')
        self.assertEqual(obj['Name'], 'New')
        self.assertEqual(obj.pending_changes, frozenset())

    def test_save_before_name_is_recorded(self):
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{}', status_code=204))
        obj = self.existing(Name='Old')
        record = obj.tracker.record

        def save_then_record(names):
            obj.save()
            record(names)
        obj.tracker.record = save_then_record
        obj.set_field('Name', 'New')
        # the new value is not lost, it is sent by the next update
        self.assertEqual(obj['Name'], 'New')
        self.assertEqual(obj.pending_changes, {'Name'})

    def test_sync_error_signal(self):
        received = []

        def receiver(sender, instance, method, exception, **kwargs):
            received.append((instance, method, type(exception)))
        self.mock_add_expected(MockJsonRequest(
            'PATCH', API + '/sobjects/Opportunity/' + SF_ID,
            req='{"Amount": "many"}', resp=ERROR_RESPONSE, status_code=400))
        obj = self.existing()
        obj.set_field('Amount', 'many')
        signals.sync_error.connect(receiver, sender=Opportunity)
        try:
            obj.save(error=lambda model, exc: None)
        finally:
            signals.sync_error.disconnect(receiver, sender=Opportunity)
        self.assertEqual(received, [(obj, 'update', DataError)])


class FetchDestroyTest(MockTestCase):

    def test_fetch(self):
        self.mock_add_expected(MockJsonRequest(
            'GET', API + '/sobjects/Opportunity/%s?fields=Name,Amount,StageName' % SF_ID,
            resp=('{"attributes": {"type": "Opportunity"}, "Id": "%s", "Name": "Acme", '
                  '"Amount": 100, "StageName": "Open"}' % SF_ID)))
        obj = Opportunity({'Id': SF_ID}, connection=self.sf_connection)
        synced = []

        def receiver(sender, instance, method, response, **kwargs):
            synced.append((instance, method))
        signals.record_synced.connect(receiver, sender=Opportunity)
        try:
            obj.fetch()
        finally:
            signals.record_synced.disconnect(receiver, sender=Opportunity)
        self.assertEqual(synced, [(obj, 'read')])
        self.assertEqual(obj.attributes, {'Id': SF_ID, 'Name': 'Acme', 'Amount': 100, 'StageName': 'Open'})
        # fetched values are not changes
        self.assertEqual(obj.pending_changes, frozenset())

    def test_fetch_without_fields(self):
        self.mock_add_expected(MockJsonRequest(
            'GET', API + '/sobjects/Contact/003000000000001AAA',
            resp='{"attributes": {"type": "Contact"}, "Id": "003000000000001AAA", "LastName": "Doe"}'))
        obj = Model({'Id': '003000000000001AAA'}, connection=self.sf_connection)
        obj.sobject_type = 'Contact'
        obj.fetch()
        self.assertEqual(obj['LastName'], 'Doe')

    def test_destroy(self):
        self.mock_add_expected(MockJsonRequest(
            'DELETE', API + '/sobjects/Opportunity/' + SF_ID, status_code=204))
        obj = Opportunity({'Id': SF_ID}, connection=self.sf_connection)
        self.assertTrue(obj.destroy())

    def test_destroy_member_of_collection(self):
        self.mock_add_expected(MockJsonRequest(
            'DELETE', API + '/sobjects/Opportunity/' + SF_ID, status_code=204))
        opportunities = Collection([{'Id': SF_ID, 'Name': 'Acme'},
                                    {'Id': '006000000000002AAA', 'Name': 'Other'}],
                                   connection=self.sf_connection, model=Opportunity)
        obj = opportunities.get(SF_ID)
        destroyed = []
        results = []

        def receiver(sender, instance, **kwargs):
            destroyed.append(instance)
        signals.record_destroyed.connect(receiver, sender=Opportunity)
        try:
            self.assertTrue(obj.destroy(success=lambda model, resp: results.append((model, resp))))
        finally:
            signals.record_destroyed.disconnect(receiver, sender=Opportunity)
        self.assertEqual(destroyed, [obj])
        self.assertEqual(results, [(obj, None)])
        self.assertEqual([x.id for x in opportunities], ['006000000000002AAA'])
        self.assertIsNone(obj.collection)

    def test_destroy_deleted(self):
        self.mock_add_expected(MockJsonRequest(
            'DELETE', API + '/sobjects/Opportunity/' + SF_ID,
            resp='[{"message": "entity is deleted", "errorCode": "ENTITY_IS_DELETED", "fields": []}]',
            status_code=404))
        obj = Opportunity({'Id': SF_ID}, connection=self.sf_connection)
        self.assertTrue(obj.destroy())

    def test_destroy_new(self):
        obj = Opportunity({'Name': 'Acme'}, connection=self.sf_connection)
        self.assertFalse(obj.destroy())
