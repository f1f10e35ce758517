"""Seed default plans and additional listing prices

Revision ID: marketplace_002
Revises: marketplace_001
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
import uuid


# revision identifiers, used by Alembic.
revision = 'marketplace_002'
down_revision = 'marketplace_001'
branch_labels = None
depends_on = None

PLANS = [
    ('Free', 'Basic listing with limited features', 0.00, 5, 0, 0,
     ['5 free listings per month', 'Basic search visibility', 'Standard listing duration'], 1),
    ('Basic', 'More listings and better visibility', 9.99, 25, 2, 1,
     ['25 listings per month', '2 featured listings', '1 vehicle listing',
      'Priority support', 'Enhanced search visibility'], 2),
    ('Professional', 'For serious sellers', 19.99, 100, 10, 5,
     ['100 listings per month', '10 featured listings', '5 vehicle listings',
      'Priority support', 'Analytics dashboard', 'Bulk upload tools'], 3),
    ('Enterprise', 'Unlimited listings for businesses', 49.99, -1, -1, -1,
     ['Unlimited listings', 'Unlimited featured listings', 'Unlimited vehicle listings',
      'Priority support', 'Advanced analytics', 'API access', 'Custom branding'], 4),
]

PRICING = [
    ('additional_listing_price', {'amount': 5.00, 'currency': 'USD'}, 'Price for each listing beyond the monthly allowance'),
    ('additional_featured_price', {'amount': 2.99, 'currency': 'USD'}, 'Surcharge for a featured listing'),
    ('additional_vehicle_price', {'amount': 4.99, 'currency': 'USD'}, 'Surcharge for a vehicle listing'),
]


def upgrade():
    plans = sa.table('subscription_plans',
        sa.column('id', sa.String),
        sa.column('name', sa.String),
        sa.column('description', sa.Text),
        sa.column('price_monthly', sa.Numeric),
        sa.column('max_listings', sa.Integer),
        sa.column('max_featured_listings', sa.Integer),
        sa.column('max_vehicle_listings', sa.Integer),
        sa.column('features', sa.JSON),
        sa.column('is_active', sa.Boolean),
        sa.column('sort_order', sa.Integer),
    )
    op.bulk_insert(plans, [
        {
            'id': str(uuid.uuid4()),
            'name': name,
            'description': description,
            'price_monthly': price,
            'max_listings': max_listings,
            'max_featured_listings': max_featured,
            'max_vehicle_listings': max_vehicle,
            'features': features,
            'is_active': True,
            'sort_order': sort_order,
        }
        for name, description, price, max_listings, max_featured, max_vehicle, features, sort_order in PLANS
    ])

    pricing = sa.table('pricing_config',
        sa.column('id', sa.String),
        sa.column('config_key', sa.String),
        sa.column('config_value', sa.JSON),
        sa.column('description', sa.Text),
        sa.column('is_active', sa.Boolean),
    )
    op.bulk_insert(pricing, [
        {'id': str(uuid.uuid4()), 'config_key': key, 'config_value': value, 'description': description, 'is_active': True}
        for key, value, description in PRICING
    ])


def downgrade():
    op.execute("DELETE FROM pricing_config WHERE config_key IN "
               "('additional_listing_price', 'additional_featured_price', 'additional_vehicle_price')")
    op.execute("DELETE FROM subscription_plans WHERE name IN ('Free', 'Basic', 'Professional', 'Enterprise')")
