"""Bundled catalog served when the record store cannot be read.

The rows use the same column names as the products table so that they pass
through the regular ingestion boundary; downstream code cannot tell which source
produced a snapshot.
"""

FALLBACK_PRODUCT_ROWS = [
    {
        "codigo": "PAL-6MM-CR",
        "nombre": "Policarbonato Alveolar 6mm Cristal",
        "categoria": "Policarbonato Alveolar",
        "tipo": "Alveolar",
        "espesor": "6mm",
        "ancho": "2.10m",
        "largo": "5.80m",
        "color": "Cristal",
        "uso": "Techos y coberturas livianas",
        "precio_con_iva": 85000,
        "stock": 50,
        "disponible_en_web": True,
    },
    {
        "codigo": "PAL-10MM-CR",
        "nombre": "Policarbonato Alveolar 10mm Cristal",
        "categoria": "Policarbonato Alveolar",
        "tipo": "Alveolar",
        "espesor": "10mm",
        "ancho": "2.10m",
        "largo": "5.80m",
        "color": "Cristal",
        "uso": "Techos y estructuras medianas",
        "precio_con_iva": 125000,
        "stock": 30,
        "disponible_en_web": True,
    },
    {
        "codigo": "PC-4MM-CR",
        "nombre": "Policarbonato Compacto 4mm Cristal",
        "categoria": "Policarbonato Compacto",
        "tipo": "Compacto",
        "espesor": "4mm",
        "ancho": "2.05m",
        "largo": "3.05m",
        "color": "Cristal",
        "uso": "Ventanas y divisiones",
        "precio_con_iva": 145000,
        "stock": 20,
        "disponible_en_web": True,
    },
]

DEFAULT_FAQ_ROWS = [
    {
        "pregunta": "¿Cuáles son los horarios de atención?",
        "respuesta": "Atendemos de Lunes a Viernes de 9:00 a 18:00 hrs, y Sábados de 9:00 a 14:00 hrs.",
        "categoria": "general",
    },
    {
        "pregunta": "¿Realizan despachos a regiones?",
        "respuesta": "Sí, realizamos despachos a todo Chile. Santiago: 24-48 horas. Regiones: 3-5 días hábiles.",
        "categoria": "envios",
    },
    {
        "pregunta": "¿Cuál es el policarbonato más resistente?",
        "respuesta": "El policarbonato alveolar de 16mm es el más resistente, ideal para grandes estructuras.",
        "categoria": "productos",
    },
    {
        "pregunta": "¿Ofrecen garantía en los productos?",
        "respuesta": (
            "Todos nuestros productos tienen garantía de 10 años contra amarillamiento "
            "y pérdida de transparencia."
        ),
        "categoria": "garantia",
    },
    {
        "pregunta": "¿Cuáles son las formas de pago?",
        "respuesta": (
            "Aceptamos transferencia bancaria, tarjetas de crédito/débito a través de Transbank, "
            "y pagos en efectivo en nuestra tienda."
        ),
        "categoria": "pagos",
    },
    {
        "pregunta": "¿Puedo retirar mi pedido en tienda?",
        "respuesta": (
            "Sí, puedes retirar tu pedido en nuestra bodega sin costo adicional. "
            "Coordina el retiro después de confirmar tu compra."
        ),
        "categoria": "retiro",
    },
    {
        "pregunta": "¿Cuál es la diferencia entre policarbonato alveolar y compacto?",
        "respuesta": (
            "El alveolar tiene celdas internas que le dan aislación térmica, mientras que el compacto "
            "es sólido, más resistente al impacto pero menos aislante."
        ),
        "categoria": "productos",
    },
    {
        "pregunta": "¿Hacen instalación?",
        "respuesta": (
            "Sí, contamos con un equipo de instaladores profesionales. "
            "Solicita una cotización de instalación junto con tu pedido."
        ),
        "categoria": "servicios",
    },
    {
        "pregunta": "¿Tienen descuentos por volumen?",
        "respuesta": (
            "Sí, ofrecemos descuentos especiales para compras sobre 50 m². "
            "Contacta a nuestros asesores para una cotización especial."
        ),
        "categoria": "precios",
    },
    {
        "pregunta": "¿Cómo puedo calcular cuánto material necesito?",
        "respuesta": (
            "Usa nuestro configurador en línea o envíanos las medidas de tu proyecto "
            "y te ayudamos con el cálculo exacto."
        ),
        "categoria": "ayuda",
    },
]
