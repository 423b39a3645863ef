"""
Flask CLI commands for database, loyalty and stock maintenance.

Commands:
- flask init-db: Create all tables
- flask seed-settings: Insert default loyalty and inventory settings
- flask expire-points: Expire earned points past their expiry date
- flask set-stock: Set the stock on hand of a product or variant
"""
from decimal import Decimal

import click

from orderdesk import database
from orderdesk.services import inventory_service, loyalty_service, settings_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        database.create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('seed-settings')
    @click.option('--enable-loyalty', is_flag=True, help='Turn the loyalty system on after seeding')
    @click.option('--enable-stock', is_flag=True, help='Turn stock checks on order creation on after seeding')
    def seed_settings(enable_loyalty, enable_stock):
        """Insert missing loyalty and inventory settings with their defaults."""
        db_session = database.get_session()
        defaults = dict(loyalty_service.DEFAULT_LOYALTY_SETTINGS)
        defaults.update(inventory_service.DEFAULT_INVENTORY_SETTINGS)
        try:
            created = settings_service.seed_defaults(db_session, defaults)
            enabled = {}
            if enable_loyalty:
                enabled['loyalty_enabled'] = {'value': True, 'type': 'boolean'}
            if enable_stock:
                enabled['stock_management_enabled'] = {'value': True, 'type': 'boolean'}
            if enabled:
                settings_service.save_settings(db_session, enabled)
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Error seeding settings: {e}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(f'{created} setting(s) created.', fg='green'))
        if enable_loyalty:
            click.echo('Loyalty points enabled.')
        if enable_stock:
            click.echo('Stock management enabled.')

    @app.cli.command('expire-points')
    def expire_points_command():
        """Expire earned loyalty points whose expiry date has passed."""
        db_session = database.get_session()
        try:
            expired = loyalty_service.expire_points(db_session)
            db_session.commit()
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Error expiring points: {e}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(f'{expired} point(s) expired.', fg='green'))

    @app.cli.command('set-stock')
    @click.argument('product_id', type=int)
    @click.option('--variant-id', type=int, default=None, help='Variant whose stock is set')
    @click.option('--quantity', type=int, default=None, help='Units on hand')
    @click.option('--weight-grams', type=str, default=None, help='Grams on hand (weight-based products)')
    def set_stock_command(product_id, variant_id, quantity, weight_grams):
        """Set the stock on hand of a product or one of its variants."""
        if quantity is None and weight_grams is None:
            click.echo(click.style('Pass --quantity or --weight-grams.', fg='red'))
            raise SystemExit(1)

        db_session = database.get_session()
        try:
            inventory = inventory_service.set_stock_level(
                db_session, product_id, variant_id,
                quantity=quantity,
                weight_grams=Decimal(weight_grams) if weight_grams is not None else None,
                notes='Set from CLI',
            )
            db_session.commit()
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Error setting stock: {e}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(
            f'Stock for product {product_id}: {inventory.quantity} unit(s), {inventory.weight_quantity}g.',
            fg='green'
        ))
