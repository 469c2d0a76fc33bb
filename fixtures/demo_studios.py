# fixtures/demo_studios.py
"""Демо-справочник студий и типов съёмки. Используется seed.py и тестами."""
from extensions import db
from models import ShootingType, Studio, StudioShootingType

# тип съёмки → [(студия, основная?)]
DEMO_MAPPING = {
    "PPT": [("Студия 1", True), ("Студия 2", False), ("Студия 3", False)],
    "Хромакей": [("Студия 4", True)],
    "Интерактив": [("Студия 2", True), ("Студия 5", False)],
}


def get_or_create(model, defaults=None, **filters):
    inst = db.session.query(model).filter_by(**filters).first()
    if inst:
        return inst, False
    data = dict(filters)
    if defaults:
        data.update(defaults)
    inst = model(**data)
    db.session.add(inst)
    return inst, True


def seed_directory(mapping=None) -> dict:
    """Идемпотентно заводит студии/типы/связи. Возвращает {имя студии: id}."""
    mapping = mapping or DEMO_MAPPING
    studios = {}
    order = 0
    for links in mapping.values():
        for studio_name, _ in links:
            if studio_name not in studios:
                order += 1
                studios[studio_name], _ = get_or_create(Studio, name=studio_name, defaults={"sort_order": order})
    db.session.flush()

    for type_name, links in mapping.items():
        st, _ = get_or_create(ShootingType, name=type_name)
        db.session.flush()
        for studio_name, is_primary in links:
            get_or_create(StudioShootingType, studio_id=studios[studio_name].id,
                          shooting_type_id=st.id, defaults={"is_primary": is_primary})
    db.session.commit()
    return {name: s.id for name, s in studios.items()}
