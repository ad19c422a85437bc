from . import db

class CoinPackage(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    coins = db.Column(db.Integer, nullable=False)
    cost = db.Column(db.Float, nullable=False)
    stripe_price_id = db.Column(db.String(255), nullable=True)

    def to_dict(self):
        return {"id": self.id, "coins": self.coins, "cost": self.cost}

    def __repr__(self):
        return f"<CoinPackage {self.coins} coins for {self.cost}>"
