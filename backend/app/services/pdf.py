"""
Quote / Invoice PDF Generation Service

Renders quotes (devis) and invoices (factures) with ReportLab. Amounts are
shown in French format (1 234,56 €) with HT / TVA / TTC totals.
"""
import io
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from app.models.sales import Quote, Invoice
from app.models.tenant import Tenant

logger = logging.getLogger(__name__)


def format_amount(value: Optional[Decimal]) -> str:
    """
    Format an amount in French format.
    Example: Decimal("12345.6") -> "12 345,60 €"
    """
    formatted = f"{Decimal(value or 0):,.2f}"
    french = formatted.replace(",", " ").replace(".", ",")
    return f"{french} €"


def format_date_fr(value: Union[date, datetime, None]) -> str:
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y")


class NumberedCanvas(canvas.Canvas):
    """Canvas adding "Page x / y" to every page footer."""

    def __init__(self, *args, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        num_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_page_number(num_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def draw_page_number(self, page_count):
        self.setFont("Helvetica", 8)
        self.setFillColor(colors.HexColor('#6b7280'))
        self.drawRightString(A4[0] - 2*cm, 1.5*cm, f"Page {self._pageNumber} / {page_count}")


def _address_lines(*parts) -> str:
    return "<br/>".join(p for p in parts if p) or "-"


def render_document_pdf(document: Union[Quote, Invoice], tenant: Tenant) -> bytes:
    """
    Generate the PDF of a quote or invoice.

    The document must have its client and items loaded.

    Raises:
        RuntimeError: If PDF generation fails
    """
    is_quote = isinstance(document, Quote)
    number = document.quote_number if is_quote else document.invoice_number
    title = "DEVIS" if is_quote else "FACTURE"

    try:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=2*cm,
            leftMargin=2*cm,
            topMargin=2*cm,
            bottomMargin=2*cm,
        )

        elements = []
        styles = getSampleStyleSheet()
        primary = colors.HexColor('#0f172a')
        accent = colors.HexColor('#2563eb')
        border = colors.HexColor('#dbe3ee')
        muted = colors.HexColor('#64748b')
        light_bg = colors.HexColor('#f8fafc')

        title_style = ParagraphStyle(
            'DocTitle',
            parent=styles['Heading1'],
            fontSize=24,
            textColor=primary,
            alignment=TA_RIGHT,
        )
        company_style = ParagraphStyle(
            'Company',
            parent=styles['Heading1'],
            fontSize=16,
            textColor=primary,
        )
        heading_style = ParagraphStyle(
            'Heading',
            parent=styles['Heading2'],
            fontSize=11,
            textColor=muted,
        )
        normal_style = ParagraphStyle(
            'Body',
            parent=styles['Normal'],
            fontSize=10,
            leading=14,
            textColor=primary,
        )

        # Header: issuer and document title
        city_line = f"{tenant.postal_code or ''} {tenant.city or ''}".strip()
        issuer = _address_lines(
            tenant.address,
            city_line,
            tenant.email,
            f"SIRET : {tenant.siret}" if tenant.siret else None,
            f"TVA : {tenant.vat_number}" if tenant.vat_number else None,
        )
        header_table = Table(
            [
                [Paragraph(f"<b>{tenant.name}</b>", company_style), Paragraph(f"<b>{title}</b>", title_style)],
                [Paragraph(issuer, normal_style), Paragraph(f"<b>N° :</b> {number}", normal_style)],
            ],
            colWidths=[9*cm, 8*cm],
        )
        header_table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LINEBELOW', (0, 0), (-1, 0), 1.5, accent),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
        ]))
        elements.append(header_table)
        elements.append(Spacer(1, 0.4*cm))

        # Client block
        client = document.client
        client_city = f"{client.postal_code or ''} {client.city or ''}".strip()
        client_table = Table(
            [
                [Paragraph("<b>Client</b>", heading_style)],
                [Paragraph(
                    f"<b>{client.company_name}</b><br/>"
                    + _address_lines(client.contact_name, client.address, client_city, client.email),
                    normal_style,
                )],
            ],
            colWidths=[17*cm],
        )
        client_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 1), (-1, 1), light_bg),
            ('BOX', (0, 1), (-1, 1), 1, border),
            ('LEFTPADDING', (0, 1), (-1, 1), 10),
            ('TOPPADDING', (0, 1), (-1, 1), 10),
            ('BOTTOMPADDING', (0, 1), (-1, 1), 10),
        ]))
        elements.append(client_table)
        elements.append(Spacer(1, 0.4*cm))

        if is_quote:
            meta_data = [
                ["Date", format_date_fr(document.issue_date), "Valable jusqu'au", format_date_fr(document.validity_date)],
            ]
        else:
            meta_data = [
                ["Date", format_date_fr(document.issue_date), "Échéance", format_date_fr(document.due_date)],
            ]
        meta_table = Table(meta_data, colWidths=[3.5*cm, 5*cm, 3.5*cm, 5*cm])
        meta_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), light_bg),
            ('TEXTCOLOR', (0, 0), (0, -1), muted),
            ('TEXTCOLOR', (2, 0), (2, -1), muted),
            ('BOX', (0, 0), (-1, -1), 1, border),
            ('TOPPADDING', (0, 0), (-1, -1), 7),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 7),
        ]))
        elements.append(meta_table)
        elements.append(Spacer(1, 0.6*cm))

        # Lines
        line_data = [["Désignation", "Qté", "PU HT", "TVA", "Total HT"]]
        for item in document.items:
            label = item.title if is_quote else item.description
            if is_quote and item.description:
                label = f"{item.title}\n{item.description}"
            line_data.append([
                label,
                f"{float(item.quantity):g}",
                format_amount(item.unit_price_ht),
                f"{float(item.vat_rate):g}%",
                format_amount(item.total_ht),
            ])
        lines_table = Table(line_data, colWidths=[7*cm, 2*cm, 3*cm, 2*cm, 3*cm])
        lines_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), primary),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LINEBELOW', (0, 1), (-1, -2), 0.5, border),
            ('LINEBELOW', (0, -1), (-1, -1), 1.5, accent),
        ]))
        elements.append(lines_table)
        elements.append(Spacer(1, 0.35*cm))

        totals_data = [
            ["Total HT", format_amount(document.subtotal_ht)],
            ["TVA", format_amount(document.tax_amount)],
        ]
        if not is_quote and document.discount_amount:
            totals_data.append(["Remise", f"- {format_amount(document.discount_amount)}"])
        totals_data.append(["Total TTC", format_amount(document.total_ttc)])

        totals_table = Table(totals_data, colWidths=[4.5*cm, 3.5*cm])
        totals_table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('BACKGROUND', (0, 0), (-1, -1), light_bg),
            ('BOX', (0, 0), (-1, -1), 1, border),
            ('LINEABOVE', (0, -1), (-1, -1), 1.5, accent),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, -1), (-1, -1), 12),
        ]))
        wrapper_table = Table([["", totals_table]], colWidths=[9*cm, 8*cm])
        elements.append(wrapper_table)

        footer = document.terms_conditions if is_quote else document.payment_terms
        if document.notes or footer:
            elements.append(Spacer(1, 0.6*cm))
            text = "<br/>".join(p for p in (document.notes, footer) if p)
            elements.append(Paragraph(text, normal_style))

        doc.build(elements, canvasmaker=NumberedCanvas)
        buffer.seek(0)
        return buffer.read()

    except Exception as e:
        logger.error(f"Failed to generate PDF for {number}: {e}", exc_info=True)
        raise RuntimeError("PDF generation failed. Please try again later.") from e


def get_pdf_filename(document: Union[Quote, Invoice]) -> str:
    number = document.quote_number if isinstance(document, Quote) else document.invoice_number
    return f"{number}.pdf"
