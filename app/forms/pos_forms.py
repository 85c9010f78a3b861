"""
Forms for catalog and checkout input.

Flask-WTF reads JSON bodies as form data, so the same forms validate both
HTML form posts and API calls.
"""
from flask_wtf import FlaskForm
from wtforms import DecimalField, IntegerField, SelectField, StringField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from app.models import PaymentMethod, PaymentStatus, SaleStatus


class ProductForm(FlaskForm):
    """Create a catalog product."""

    id = StringField('Code', validators=[Optional(), Length(max=64)])

    name = StringField(
        'Name',
        validators=[DataRequired(message='Product name is required'), Length(max=200)]
    )

    cost = DecimalField(
        'Cost',
        validators=[Optional(), NumberRange(min=0, message='Cost cannot be negative')],
        places=2,
        default=0
    )

    price = DecimalField(
        'Price',
        validators=[Optional(), NumberRange(min=0, message='Price cannot be negative')],
        places=2,
        default=0
    )

    category = StringField('Category', validators=[Optional(), Length(max=100)])

    stock = IntegerField(
        'Stock',
        validators=[Optional(), NumberRange(min=0, message='Stock cannot be negative')],
        default=0
    )

    def to_data(self) -> dict:
        return {
            'id': self.id.data,
            'name': self.name.data,
            'cost': self.cost.data,
            'price': self.price.data,
            'category': self.category.data,
            'stock': self.stock.data,
        }


class CheckoutForm(FlaskForm):
    """Customer, payment and delivery details captured at checkout."""

    customer_name = StringField('Customer', validators=[Optional(), Length(max=200)])
    customer_phone = StringField('Phone', validators=[Optional(), Length(max=50)])
    customer_address = StringField('Address', validators=[Optional(), Length(max=500)])
    logistics = StringField('Delivery', validators=[Optional(), Length(max=100)])
    destination_branch = StringField('Branch', validators=[Optional(), Length(max=100)])

    payment_method = SelectField(
        'Payment Method',
        choices=[(m.value, m.value) for m in PaymentMethod],
        default=PaymentMethod.CASH.value
    )

    payment_status = SelectField(
        'Payment Status',
        choices=[(s.value, s.value) for s in PaymentStatus],
        default=PaymentStatus.PAID.value
    )

    order_status = SelectField(
        'Order Status',
        choices=[('', 'Default')] + [
            (s.value, s.value) for s in (SaleStatus.PENDING, SaleStatus.COMPLETED)
        ],
        validators=[Optional()],
        default=''
    )

    def metadata(self) -> dict:
        return {
            'customer_name': self.customer_name.data,
            'customer_phone': self.customer_phone.data,
            'customer_address': self.customer_address.data,
            'logistics': self.logistics.data,
            'destination_branch': self.destination_branch.data,
            'payment_method': self.payment_method.data,
            'payment_status': self.payment_status.data,
        }
