# Routes package init
"""
EntomoGuide Backend: API Routes Package
========================================

Route Inventory:
    - accounts.py: /login, /clientes..., /aprovarUsuario, /usuarios/{id}/pendente,
                   /dashboard/...
    - catalog.py:  /categorias, /insetos
    - images.py:   /insetos/{id}/imagem(ns), /insetos/imagens/{id}, /uploads/{name}
    - health.py:   /health

Routes stay thin: extract request data, call a service, shape the response.
"""
