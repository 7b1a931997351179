"""
Management command to rebuild balance quantities from the movement ledger.

Usage:
    python manage.py recalculate_balances
    python manage.py recalculate_balances --tenant acme --dry-run
"""

from django.core.management.base import BaseCommand
from django.db import transaction

from pharmastock.models import InventoryBalance


class Command(BaseCommand):
    """Recalculate balances command."""

    help = 'Recalcula los saldos a partir del libro de movimientos'

    def add_arguments(self, parser):
        parser.add_argument(
            '--tenant',
            help='Solo los saldos de este tenant',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Muestra las diferencias sin corregirlas',
        )

    def handle(self, *args, **options):
        balances = InventoryBalance.objects.select_related('product', 'location', 'batch').order_by('pk')
        if options['tenant']:
            balances = balances.for_tenant(options['tenant'])

        checked = 0
        drifted = 0
        for balance in balances.iterator():
            checked += 1
            expected = balance.ledger_quantity()
            if expected == balance.quantity:
                continue

            drifted += 1
            self.stdout.write(f'{balance}: libro={expected} saldo={balance.quantity}')
            if not options['dry_run']:
                with transaction.atomic():
                    locked = InventoryBalance.objects.select_for_update().get(pk=balance.pk)
                    locked.recalculate()

        if options['dry_run']:
            self.stdout.write(f'{drifted} de {checked} saldo(s) con diferencia')
        else:
            self.stdout.write(
                self.style.SUCCESS(f'{drifted} de {checked} saldo(s) corregido(s)')
            )
