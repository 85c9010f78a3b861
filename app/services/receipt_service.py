"""Receipt and inventory checklist PDFs."""

from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from app.services.pricing_service import line_amounts


def _fmt_money(value, currency: str) -> str:
    return f"{Decimal(value):,.2f} {currency}".strip()


def _document(buffer: BytesIO) -> SimpleDocTemplate:
    return SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )


def _header(title: str, shop_info: Dict[str, Any]) -> List[Any]:
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'CustomHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    elements = [Paragraph(title, title_style)]
    if shop_info.get('name'):
        elements.append(Paragraph(f"<b>{escape(shop_info['name'])}</b>", header_style))
    if shop_info.get('address'):
        elements.append(Paragraph(escape(shop_info['address']), header_style))
    if shop_info.get('phone'):
        elements.append(Paragraph(f"Tel: {escape(shop_info['phone'])}", header_style))
    elements.append(Spacer(1, 0.3*inch))
    return elements


def generate_receipt_pdf(sale, shop_info: Dict[str, Any]) -> BytesIO:
    """Render a committed sale as a printable receipt."""
    currency = shop_info.get('currency', '')
    buffer = BytesIO()
    doc = _document(buffer)
    elements = _header('RECEIPT', shop_info)

    issued = sale.timestamp.strftime('%d/%m/%Y %H:%M') if sale.timestamp else ''
    info_data = [
        ['Receipt No:', sale.id],
        ['Date:', issued],
        ['Status:', sale.status.value],
        ['Customer:', sale.customer_name or 'Walk-in'],
    ]
    if sale.customer_phone:
        info_data.append(['Phone:', sale.customer_phone])
    if sale.customer_address:
        info_data.append(['Address:', sale.customer_address])
    info_data.append(['Payment:', f"{sale.payment_method} ({sale.payment_status})"])
    if sale.logistics:
        info_data.append(['Delivery:', sale.logistics])

    info_table = Table(info_data, colWidths=[2*inch, 3*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    table_data = [['Product', 'Qty', 'Unit Price', 'Discount', 'Amount']]
    for line in sale.line_items():
        amounts = line_amounts(line)
        table_data.append([
            line.get('name') or line['product_id'],
            str(line['qty']),
            _fmt_money(line['unit_price'], ''),
            _fmt_money(amounts['discount'], '') if amounts['discount'] else '-',
            _fmt_money(amounts['net'], ''),
        ])

    items_table = Table(table_data, colWidths=[2.9*inch, 0.6*inch, 1.1*inch, 1*inch, 1.1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (1, 1), (1, -1), 'CENTER'),
        ('ALIGN', (2, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    totals_data = [['Subtotal:', _fmt_money(sale.subtotal, currency)]]
    if sale.bill_discount_amount:
        totals_data.append(['Discount:', '-' + _fmt_money(sale.bill_discount_amount, currency)])
    totals_data.append(['GRAND TOTAL:', _fmt_money(sale.total, currency)])

    totals_table = Table(totals_data, colWidths=[5.1*inch, 1.6*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -2), 11),
        ('FONTSIZE', (0, -1), (-1, -1), 14),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, -1), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, -1), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_inventory_checklist_pdf(products, shop_info: Dict[str, Any]) -> BytesIO:
    """Stock count sheet: system stock next to an empty physical count column."""
    buffer = BytesIO()
    doc = _document(buffer)
    elements = _header('INVENTORY CHECKLIST', shop_info)

    styles = getSampleStyleSheet()
    elements.append(Paragraph(datetime.now().strftime('%d/%m/%Y %H:%M'), styles['Normal']))
    elements.append(Spacer(1, 0.2*inch))

    table_data = [['Code', 'Product', 'System Stock', 'Physical Count']]
    for product in products:
        table_data.append([product.id, product.name, str(product.stock), ''])

    table = Table(table_data, colWidths=[1.3*inch, 3*inch, 1.2*inch, 1.3*inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#F8FAFC')),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('ALIGN', (2, 1), (2, -1), 'CENTER'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#CBD5E1')),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 0.8*inch))

    signatures = Table([['_____________________', '_____________________'],
                        ['Checked by', 'Approved by']],
                       colWidths=[3.4*inch, 3.4*inch])
    signatures.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 1), (-1, 1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
    ]))
    elements.append(signatures)

    doc.build(elements)
    buffer.seek(0)
    return buffer
