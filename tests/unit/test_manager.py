import pytest
from dbproc import EntityList, EntityManager, Response
from dbproc.exceptions import BindError, ConnectionFailure
from dbproc.types import SqlType

from tests.fixtures.entities import Account, Customer, CustomerFilter
from tests.fixtures.entities import CustomerIdFilter, CustomerManager
from tests.fixtures.mocks import FakeProvider


def _ids(start=1):
    counter = iter(range(start, 1000))
    return lambda inputs: {'Id': next(counter)}


class TestSave:

    def test_single_customer(self, customer_manager, fake_database):
        fake_database.outputs['customer_save'] = _ids(7)
        customer = Customer(name='Acme')

        response = customer_manager.save(customer)

        assert response == Response(True, '', None)
        statement = fake_database.statements[0]
        assert statement.procedure == 'customer_save'
        assert statement.calls == [
            ('set_object', 'Name', 'Acme'),
            ('register_out_parameter', 'Id', SqlType.INTEGER),
        ]
        assert customer.id == 7
        assert fake_database.commits == 1
        assert fake_database.rollbacks == 0
        assert fake_database.committed == [('customer_save', {'Name': 'Acme'})]

    def test_batch_commits_once(self, customer_manager, fake_database):
        fake_database.outputs['customer_save'] = _ids()
        customers = EntityList([Customer(name='Acme'), Customer(name='Globex'), Customer(name='Initech')])

        response = customer_manager.save(customers)

        assert response.success
        assert [c.id for c in customers] == [1, 2, 3]
        assert fake_database.commits == 1
        assert len(fake_database.committed) == 3
        assert len(fake_database.connections) == 1

    def test_batch_is_atomic(self, customer_manager, fake_database):
        fake_database.fail_when = lambda procedure, inputs: (
            'duplicate key value violates unique constraint' if inputs['Name'] == 'Globex' else None)
        customers = [Customer(name='Acme'), Customer(name='Globex'), Customer(name='Initech')]

        response = customer_manager.save(customers)

        assert not response.success
        assert response.message == 'duplicate key value violates unique constraint'
        assert response.data is None
        assert fake_database.rollbacks == 1
        assert fake_database.commits == 0
        assert fake_database.committed == []
        assert [p for p, _ in fake_database.executed] == ['customer_save'] * 2

    def test_commit_failure_rolls_back(self, customer_manager, fake_database):
        fake_database.commit_error = 'could not serialize access'

        response = customer_manager.save(Customer(name='Acme'))

        assert response == Response(False, 'could not serialize access', None)
        assert fake_database.rollbacks == 1

    def test_empty_batch(self, customer_manager, fake_database):
        assert customer_manager.save([]).success
        assert fake_database.statements == []
        assert fake_database.commits == 1

    def test_batch_from_list_factory(self, fake_provider, fake_database):
        class Batch:

            def __init__(self):
                self.items = []

            def append(self, item):
                self.items.append(item)

            def __iter__(self):
                return iter(self.items)

        manager = CustomerManager(fake_provider, list_factory=Batch)
        batch = manager.list_factory()
        batch.append(Customer(name='Acme'))
        batch.append(Customer(name='Globex'))

        assert manager.save(batch).success
        assert fake_database.committed == [('customer_save', {'Name': 'Acme'}),
                                           ('customer_save', {'Name': 'Globex'})]

    def test_batch_from_generator(self, customer_manager, fake_database):
        fake_database.outputs['customer_save'] = _ids()
        customers = [Customer(name='Acme'), Customer(name='Globex')]

        assert customer_manager.save(c for c in customers).success
        assert fake_database.committed == [('customer_save', {'Name': 'Acme'}),
                                           ('customer_save', {'Name': 'Globex'})]
        assert [c.id for c in customers] == [1, 2]

    def test_delete_batch_from_generator(self, customer_manager, fake_database):
        names = ['Acme', 'Globex']
        assert customer_manager.delete(Customer(name=n) for n in names).success
        assert [inputs for _, inputs in fake_database.committed] == [{'Name': 'Acme'}, {'Name': 'Globex'}]

    def test_inout_written_back(self, account_manager, fake_database):
        fake_database.outputs['account_save'] = lambda inputs: {'Version': inputs['Version'] + 1}
        account = Account(number='A-1', balance=10.0, version=4)

        assert account_manager.save(account).success
        assert account.version == 5
        assert fake_database.statements[0].inputs == {
            'AccountNumber': 'A-1', 'Balance': 10.0, 'Version': 4}

    def test_bind_error_propagates_after_rollback(self, customer_manager, fake_database):
        fake_database.signatures['customer_save'] = {'Name'}

        with pytest.raises(BindError):
            customer_manager.save(Customer(name='Acme'))
        assert fake_database.rollbacks == 1
        assert fake_database.commits == 0
        assert fake_database.connections[0].closed == 1

    def test_bind_error_survives_failed_rollback(self, customer_manager, fake_database):
        fake_database.signatures['customer_save'] = {'Name'}
        fake_database.rollback_error = 'connection already closed'

        with pytest.raises(BindError):
            customer_manager.save(Customer(name='Acme'))
        assert fake_database.connections[0].closed == 1

    def test_connection_failure_propagates(self, fake_database):
        manager = CustomerManager(FakeProvider(fake_database, fail=True))
        with pytest.raises(ConnectionFailure):
            manager.save(Customer(name='Acme'))
        assert fake_database.statements == []


class TestDelete:

    def test_entity(self, customer_manager, fake_database):
        assert customer_manager.delete(Customer(name='Acme', id=3)).success
        assert fake_database.statements[0].procedure == 'customer_delete'
        assert fake_database.commits == 1

    def test_filter_is_one_statement(self, customer_manager, fake_database):
        assert customer_manager.delete(CustomerFilter(name='A%')).success
        assert [s.procedure for s in fake_database.statements] == ['customer_delete']
        assert fake_database.statements[0].inputs == {'Name': 'A%'}
        assert fake_database.commits == 1


class TestExecuteUpdate:

    def test_constraint_violation(self, customer_manager, fake_database):
        message = 'update or delete on table "customer" violates foreign key constraint'
        fake_database.fail_when = lambda procedure, inputs: message

        response = customer_manager.execute_update(CustomerFilter(name='A%'), 'customer_purge')

        assert response == Response(False, message, None)
        assert len(fake_database.connections) == 1
        assert fake_database.connections[0].closed == 1
        assert fake_database.rollbacks == 1
        assert fake_database.commits == 0

    def test_success(self, customer_manager, fake_database):
        response = customer_manager.execute_update(CustomerFilter(name='A%'), 'customer_purge')
        assert response.success
        assert fake_database.committed == [('customer_purge', {'Name': 'A%'})]


class TestGet:

    def test_found(self, customer_manager, fake_database):
        fake_database.rows['customer_get'] = [{'Id': 3, 'Name': 'Acme'}]

        response = customer_manager.get(CustomerIdFilter(id=3))

        assert response.success
        assert response.data == Customer(name='Acme', id=3)
        assert fake_database.statements[0].inputs == {'Id': 3}

    def test_read_uses_autocommit_and_restores(self, customer_manager, fake_database):
        fake_database.rows['customer_get'] = [{'Id': 3, 'Name': 'Acme'}]
        customer_manager.get(CustomerIdFilter(id=3))

        cn = fake_database.connections[0]
        assert cn.autocommit_history == [False, True, False]
        assert cn.closed == 1
        assert fake_database.commits == 0

    def test_no_row(self, customer_manager, fake_database):
        response = customer_manager.get(CustomerIdFilter(id=99))

        assert not response.success
        assert 'no rows' in response.message
        assert response.data is None
        assert fake_database.connections[0].closed == 1

    def test_mapping_failure(self, customer_manager, fake_database):
        fake_database.rows['customer_get'] = [{'Name': 'Acme'}]

        response = customer_manager.get(CustomerIdFilter(id=3))

        assert not response.success
        assert "'Id'" in response.message
        assert fake_database.rollbacks == 0

    def test_execution_error(self, customer_manager, fake_database):
        fake_database.fail_when = lambda procedure, inputs: 'permission denied for function customer_get'

        response = customer_manager.get(CustomerIdFilter(id=3))

        assert response == Response(False, 'permission denied for function customer_get', None)
        assert fake_database.rollbacks == 0
        assert fake_database.connections[0].closed == 1

    def test_custom_mapper(self, fake_provider, fake_database):
        fake_database.rows['customer_get'] = [{'id': 3, 'name': 'acme'}]
        manager = CustomerManager(
            fake_provider, mapper=lambda row: Customer(name=row.name.title(), id=row.id))

        assert manager.get(CustomerIdFilter(id=3)).data == Customer(name='Acme', id=3)

    def test_mapper_errors_become_failures(self, fake_provider, fake_database):
        fake_database.rows['customer_get'] = [{'id': 3}]
        manager = CustomerManager(fake_provider, mapper=lambda row: Customer(name=row['name']))

        response = manager.get(CustomerIdFilter(id=3))
        assert not response.success


class TestList:

    def test_rows_in_cursor_order(self, customer_manager, fake_database):
        fake_database.rows['customer_list'] = [
            {'Id': 3, 'Name': 'Initech'},
            {'Id': 1, 'Name': 'Acme'},
            {'Id': 2, 'Name': 'Globex'},
        ]

        response = customer_manager.get_list(CustomerFilter(name='%'))

        assert response.success
        assert isinstance(response.data, EntityList)
        assert [c.id for c in response.data] == [3, 1, 2]
        assert fake_database.statements[0].procedure == 'customer_list'

    def test_no_rows_gives_empty_list(self, customer_manager, fake_database):
        response = customer_manager.get_list(CustomerFilter(name='Z%'))

        assert response.success
        assert response.data == []
        assert response.data is not None
        assert response.message == ''

    def test_list_factory(self, fake_provider, fake_database):
        fake_database.rows['customer_list'] = [{'Id': 1, 'Name': 'Acme'}]
        manager = CustomerManager(fake_provider, list_factory=list)

        response = manager.get_list(CustomerFilter(name='%'))
        assert type(response.data) is list
        assert response.data == [Customer(name='Acme', id=1)]

    def test_execute_selection_with_any_procedure(self, customer_manager, fake_database):
        fake_database.rows['customer_recent'] = [{'Id': 1, 'Name': 'Acme'}]

        response = customer_manager.execute_selection(CustomerFilter(name='%'), 'customer_recent')
        assert len(response.data) == 1

    def test_mapping_failure_stops_list(self, customer_manager, fake_database):
        fake_database.rows['customer_list'] = [{'Id': 1, 'Name': 'Acme'}, {'Id': 2}]

        response = customer_manager.get_list(CustomerFilter(name='%'))
        assert not response.success
        assert response.data is None

    def test_without_filter(self, customer_manager, fake_database):
        fake_database.rows['customer_list'] = [{'Id': 1, 'Name': 'Acme'}]
        assert len(customer_manager.get_list().data) == 1
        assert fake_database.statements[0].inputs == {}


class TestConfiguration:

    def test_per_instance_procedures(self, fake_provider, fake_database):
        manager = CustomerManager(fake_provider, save_procedure='customer_upsert')
        manager.save(Customer(name='Acme'))
        assert fake_database.statements[0].procedure == 'customer_upsert'
        assert CustomerManager.save_procedure == 'customer_save'

    def test_missing_procedure(self, fake_provider):
        manager = EntityManager(fake_provider)
        with pytest.raises(ValueError):
            manager.save(Customer(name='Acme'))

    def test_blank_procedure_name(self, fake_provider):
        manager = CustomerManager(fake_provider, save_procedure='   ')
        with pytest.raises(ValueError):
            manager.save(Customer(name='Acme'))

    def test_unknown_argument(self, fake_provider):
        with pytest.raises(TypeError):
            CustomerManager(fake_provider, update_procedure='x')
