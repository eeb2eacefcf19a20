"""Receipt service - printable boleta/factura PDF for completed sales."""

from io import BytesIO
from typing import Dict, Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from gestionfarma.models import Sale, SaleLineType
from gestionfarma.services.totals_service import Totals
from gestionfarma.utils.formatters import money_pe, datetime_pe

# 80 mm thermal roll
RECEIPT_WIDTH = 80 * mm
RECEIPT_HEIGHT = 297 * mm

PAYMENT_LABELS = {
    'CASH': 'Efectivo',
    'MOBILE_WALLET': 'Yape / Plin',
    'BANK_TRANSFER': 'Transferencia',
    'OTHER': 'Otros',
}


def render_receipt_pdf(sale: Sale, client_name: str, totals: Totals, business_info: Dict[str, Any],
                       tax_rate_label: str = '18%') -> BytesIO:
    """
    Build the receipt of a completed sale.

    Args:
        sale: Completed sale with its lines
        client_name: Display name of the client (walk-in name if none)
        totals: Totals breakdown of the sale
        business_info: name, tax_id, address, phone
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=(RECEIPT_WIDTH, RECEIPT_HEIGHT),
        rightMargin=4*mm,
        leftMargin=4*mm,
        topMargin=4*mm,
        bottomMargin=4*mm,
        title=f"Venta {sale.id}"
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'ReceiptTitle',
        parent=styles['Heading1'],
        fontSize=12,
        alignment=TA_CENTER,
        spaceAfter=2,
        fontName='Helvetica-Bold'
    )
    center_style = ParagraphStyle(
        'ReceiptCenter',
        parent=styles['Normal'],
        fontSize=7,
        alignment=TA_CENTER,
        leading=9
    )
    small_style = ParagraphStyle('ReceiptSmall', parent=styles['Normal'], fontSize=7, leading=9)

    # 1. Business header
    elements.append(Paragraph(business_info.get('name') or 'GestionFarma', title_style))
    if business_info.get('tax_id'):
        elements.append(Paragraph(f"RUC: {business_info['tax_id']}", center_style))
    if business_info.get('address'):
        elements.append(Paragraph(business_info['address'], center_style))
    if business_info.get('phone'):
        elements.append(Paragraph(f"Cel: {business_info['phone']}", center_style))
    elements.append(Spacer(1, 3*mm))

    # 2. Sale metadata
    doc_label = 'Factura' if sale.document_type == 'factura' else 'Boleta'
    elements.append(Paragraph(f"{doc_label} de Venta N°: {sale.id}", small_style))
    elements.append(Paragraph(f"Fecha: {datetime_pe(sale.completed_at)}", small_style))
    elements.append(Paragraph(f"Cliente: {escape(client_name)}", small_style))
    elements.append(Spacer(1, 2*mm))

    # 3. Items
    table_data = [['Producto', 'Cant', 'Total']]
    for line in sale.lines:
        if line.line_type == SaleLineType.REDEEMED:
            name = f"(CANJE) {line.product_name}"
        else:
            name = f"{line.product_name} ({line.unit.value})"
        table_data.append([Paragraph(escape(name), small_style), str(line.quantity), money_pe(line.subtotal)])

    items_table = Table(table_data, colWidths=[42*mm, 10*mm, 20*mm])
    items_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 7),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LINEBELOW', (0, 0), (-1, 0), 0.5, colors.black),
        ('LINEBELOW', (0, -1), (-1, -1), 0.5, colors.black),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 2*mm))

    # 4. Totals
    totals_data = [
        ['OP. GRAVADA:', money_pe(totals.tax_base)],
        [f'IGV ({tax_rate_label}):', money_pe(totals.tax)],
        ['SUBTOTAL:', money_pe(totals.subtotal)],
        ['DESCUENTO:', f"- {money_pe(totals.discount)}"],
    ]
    if totals.rounding != 0:
        totals_data.append(['REDONDEO:', money_pe(totals.rounding)])
    totals_data.append(['TOTAL A PAGAR:', money_pe(totals.amount_due)])
    due_row = len(totals_data) - 1
    if sale.amount_tendered:
        totals_data.append(['RECIBIDO:', money_pe(sale.amount_tendered)])
        totals_data.append(['VUELTO:', money_pe(totals.change)])

    totals_table = Table(totals_data, colWidths=[40*mm, 32*mm])
    totals_table.setStyle(TableStyle([
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('FONTNAME', (0, due_row), (-1, due_row), 'Helvetica-Bold'),
    ]))
    elements.append(totals_table)

    method = PAYMENT_LABELS.get(sale.payment_method or 'CASH', sale.payment_method)
    elements.append(Paragraph(f"Tipo de Pago: {method}", small_style))
    if sale.points_earned or sale.points_redeemed:
        elements.append(Paragraph(
            f"Puntos ganados: {sale.points_earned} | Puntos canjeados: {sale.points_redeemed}", small_style
        ))

    # 5. Note and footer
    if sale.receipt_note:
        elements.append(Spacer(1, 2*mm))
        note_table = Table([[Paragraph(f"<i>{escape(sale.receipt_note)}</i>", center_style)]], colWidths=[72*mm])
        note_table.setStyle(TableStyle([('BOX', (0, 0), (-1, -1), 0.5, colors.black)]))
        elements.append(note_table)

    elements.append(Spacer(1, 3*mm))
    elements.append(Paragraph("¡Gracias por su compra!", center_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer
